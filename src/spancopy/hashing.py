"""
Hashing used by ``--verify``.
"""

import hashlib
from pathlib import Path

import aiofiles
import xxhash

from .models import BUFFER_SIZE, HASH_ALGORITHMS


class HashCalculator:
    """
    Incremental hash over one of the supported algorithms.

    Parameters
    ----------
    algorithm : str, default="xxh64be"
        Hash algorithm to use. Supported: xxh64be, md5, sha1, sha256
    """

    def __init__(self, algorithm: str = "xxh64be"):
        self.algorithm = algorithm.lower()
        if self.algorithm not in HASH_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        if self.algorithm == "xxh64be":
            self._hasher = xxhash.xxh64()
        else:
            self._hasher = hashlib.new(self.algorithm)

    def update(self, data: bytes) -> None:
        self._hasher.update(data)

    def hexdigest(self) -> str:
        return self._hasher.hexdigest()

    @staticmethod
    async def hash_file(
        path: Path,
        algorithm: str = "xxh64be",
        buffer_size: int = BUFFER_SIZE,
    ) -> str:
        """
        Hash a whole file.

        Parameters
        ----------
        path : Path
            File to hash
        algorithm : str, default="xxh64be"
            Hash algorithm to use
        buffer_size : int, default=BUFFER_SIZE
            Read size per chunk

        Returns
        -------
        str
            Hexadecimal digest
        """
        hasher = HashCalculator(algorithm)
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(buffer_size):
                hasher.update(chunk)
        return hasher.hexdigest()
