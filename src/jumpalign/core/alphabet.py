"""
Module for representing ASCII biological alphabets
"""
from typing import Final, ClassVar, Union

import numpy as np


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class AlphabetError(Exception):
    """Raised when an alphabet is invalid or a sequence contains symbols outside the alphabet."""


# Classes --------------------------------------------------------------------------------------------------------------
class Alphabet:
    """
    A class to represent an alphabet of ASCII symbols.

    Symbols are encoded to their index in the alphabet, so two encoded symbols are equal exactly when the
    (case-folded, alias-resolved) symbols are equal.

    Examples:
        >>> Alphabet.DNA.encode(b'acgt')
        array([0, 1, 2, 3], dtype=uint8)
    """
    __slots__ = ('_data', '_lookup_table', '_decode_table')
    DTYPE: Final = np.uint8
    INVALID: Final = np.iinfo(DTYPE).max
    MAX_LEN: Final = INVALID
    ENCODING: Final = 'ascii'

    DNA: ClassVar['Alphabet']
    RNA: ClassVar['Alphabet']
    AMINO: ClassVar['Alphabet']

    def __init__(self, symbols: bytes, aliases: dict[bytes, bytes] = None):
        """
        Initializes an Alphabet.

        Args:
            symbols: The symbols in the alphabet as bytes.
            aliases: Optional mapping of extra characters to valid ones (e.g. {b'U': b'T'}).

        Raises:
            AlphabetError: If symbols are not ASCII, too long, contain duplicates, or an alias is invalid.
        """
        if not symbols: raise AlphabetError('Alphabet must contain at least one symbol')
        if not symbols.isascii(): raise AlphabetError('Alphabet symbols must be a valid ASCII string')
        if len(symbols) > self.MAX_LEN:
            raise AlphabetError(f'Alphabet size cannot exceed {self.MAX_LEN} symbols ({self.DTYPE})')
        if len(set(symbols.upper())) != len(symbols): raise AlphabetError('Alphabet contains duplicate symbols')

        self._data: np.ndarray = np.frombuffer(symbols, dtype=self.DTYPE)

        # Build Lookup Table
        self._lookup_table = np.full(256, self.INVALID, dtype=self.DTYPE)
        indices = np.arange(len(symbols), dtype=self.DTYPE)
        self._lookup_table[np.frombuffer(symbols, dtype=self.DTYPE)] = indices
        self._lookup_table[np.frombuffer(symbols.lower(), dtype=self.DTYPE)] = indices

        if aliases:
            for src, dst in aliases.items():
                if len(src) != 1 or len(dst) != 1: raise AlphabetError("Aliases must be single bytes")
                dst_idx = self._lookup_table[ord(dst)]
                if dst_idx == self.INVALID: raise AlphabetError(f"Alias target {dst} not in alphabet")
                self._lookup_table[ord(src.upper())] = dst_idx
                self._lookup_table[ord(src.lower())] = dst_idx

        decode_map = np.zeros(256, dtype=self.DTYPE)
        decode_map[:len(self._data)] = self._data
        self._decode_table = decode_map.tobytes()

    def __len__(self): return len(self._data)
    def __iter__(self): return iter(self._data)
    def __getitem__(self, item): return self._data[item]
    def __repr__(self): return f"Alphabet({self._data.tobytes().decode(self.ENCODING)})"

    def __contains__(self, item):
        try:
            if isinstance(item, (int, np.integer)):
                return self._lookup_table[item] != self.INVALID
            if isinstance(item, (str, bytes)):
                if len(item) != 1: return False
                val = ord(item) if isinstance(item, str) else item[0]
                return self._lookup_table[val] != self.INVALID
        except (IndexError, ValueError, TypeError):
            pass
        return False

    def __eq__(self, other):
        if self is other: return True
        if not isinstance(other, Alphabet): return False
        return np.array_equal(self._data, other._data) and np.array_equal(self._lookup_table, other._lookup_table)

    def __hash__(self): return hash((self._data.tobytes(), self._lookup_table.tobytes()))

    def encode(self, text: Union[bytes, str]) -> np.ndarray:
        """
        Encodes a sequence into an array of symbol indices.

        Args:
            text: The sequence as bytes or an ASCII string.

        Returns:
            A numpy array of encoded indices.

        Raises:
            AlphabetError: If the text contains symbols that are not in the alphabet.
        """
        if isinstance(text, str):
            try: text = text.encode(self.ENCODING)
            except UnicodeEncodeError as e: raise AlphabetError(f'Sequence is not ASCII: {e}') from e
        encoded = self._lookup_table[np.frombuffer(text, dtype=self.DTYPE)]
        if (invalid := np.flatnonzero(encoded == self.INVALID)).size:
            raise AlphabetError(f'Symbol {text[invalid[0]:invalid[0] + 1]!r} at position {invalid[0]} '
                                f'is not in {self!r}')
        return encoded

    def decode(self, encoded: np.ndarray) -> bytes:
        """Decodes an array of indices back to bytes.

        Args:
            encoded: The numpy array of indices (uint8).

        Returns:
            The decoded bytes string.
        """
        if encoded.dtype != self.DTYPE:
            encoded = encoded.astype(self.DTYPE, copy=False)
        return encoded.tobytes().translate(self._decode_table)


# Initialize Standard Alphabets
Alphabet.DNA = Alphabet(b'ACGTN', aliases={b'U': b'T'})
Alphabet.RNA = Alphabet(b'ACGUN', aliases={b'T': b'U'})
Alphabet.AMINO = Alphabet(b'ACDEFGHIKLMNPQRSTVWY',
                          aliases={b'X': b'A', b'B': b'D', b'Z': b'E', b'J': b'L', b'U': b'C', b'O': b'K'})
