"""Token-bounded text splitting with overlap (tiktoken cl100k_base)."""

import tiktoken

# Singleton tokenizer (encoding is expensive to load)
_TOKENIZER: tiktoken.Encoding | None = None


def get_tokenizer() -> tiktoken.Encoding:
    global _TOKENIZER
    if _TOKENIZER is None:
        _TOKENIZER = tiktoken.get_encoding("cl100k_base")
    return _TOKENIZER


class TokenTextSplitter:
    """
    Split text into chunks of at most `chunk_size` tokens, consecutive chunks
    sharing `overlap` tokens.

    `encoding` is anything with encode(str) -> list[int] and
    decode(list[int]) -> str; defaults to the shared tiktoken encoding.
    """

    def __init__(self, chunk_size: int, overlap: int = 0, encoding=None):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self._encoding = encoding

    @property
    def encoding(self):
        if self._encoding is None:
            self._encoding = get_tokenizer()
        return self._encoding

    def split(self, text: str) -> list[str]:
        text = text.strip()
        if not text:
            return []

        tokens = self.encoding.encode(text)
        step = self.chunk_size - self.overlap
        chunks = []
        for start in range(0, len(tokens), step):
            chunk = self.encoding.decode(tokens[start:start + self.chunk_size]).strip()
            if chunk:
                chunks.append(chunk)
            if start + self.chunk_size >= len(tokens):
                break
        return chunks
