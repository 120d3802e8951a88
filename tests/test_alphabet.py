import numpy as np
import pytest
from jumpalign.core.alphabet import Alphabet, AlphabetError


class TestAlphabetInit:
    def test_valid_init(self):
        alpha = Alphabet(b'ACGT')
        assert len(alpha) == 4
        assert b'A' in alpha
        assert b'Z' not in alpha

    def test_init_invalid_ascii(self):
        with pytest.raises(AlphabetError, match="valid ASCII"):
            Alphabet(b'ACG\xff')

    def test_init_duplicates(self):
        with pytest.raises(AlphabetError, match="duplicate"):
            Alphabet(b'AACGT')

    def test_init_empty(self):
        with pytest.raises(AlphabetError, match="at least one"):
            Alphabet(b'')

    def test_aliases(self):
        alpha = Alphabet(b'ACGT', aliases={b'U': b'T'})
        assert alpha.encode(b'U')[0] == alpha.encode(b'T')[0]
        # Lower case aliases resolve too
        assert alpha.encode(b'u')[0] == alpha.encode(b'T')[0]

    def test_alias_target_missing(self):
        with pytest.raises(AlphabetError, match="not in alphabet"):
            Alphabet(b'ACGT', aliases={b'U': b'X'})


class TestAlphabetEncoding:
    def test_encode_decode_roundtrip(self):
        alpha = Alphabet.DNA
        encoded = alpha.encode(b'ACGTN')
        np.testing.assert_array_equal(encoded, [0, 1, 2, 3, 4])
        assert alpha.decode(encoded) == b'ACGTN'

    def test_encode_str(self):
        np.testing.assert_array_equal(Alphabet.DNA.encode('GATC'), [2, 0, 3, 1])

    def test_encode_mixed_case(self):
        np.testing.assert_array_equal(Alphabet.DNA.encode(b'acgt'), Alphabet.DNA.encode(b'ACGT'))

    def test_encode_invalid_chars(self):
        # Dropping symbols would shift alignment coordinates, so they are rejected
        with pytest.raises(AlphabetError, match="position 4"):
            Alphabet.DNA.encode(b'ACGTZ')

    def test_encode_non_ascii(self):
        with pytest.raises(AlphabetError, match="not ASCII"):
            Alphabet.DNA.encode('ACGTé')


class TestStandardAlphabets:
    def test_dna_properties(self):
        dna = Alphabet.DNA
        assert len(dna) == 5
        assert 'N' in dna
        assert ord('a') in dna
        assert dna.encode(b'U')[0] == dna.encode(b'T')[0]

    def test_rna_properties(self):
        rna = Alphabet.RNA
        assert b'U' in rna
        assert b'T' in rna  # T maps to U via alias
        assert b'T' not in rna[:].tobytes()

    def test_amino_properties(self):
        prot = Alphabet.AMINO
        assert len(prot) == 20
        assert prot.encode(b'Z')[0] == prot.encode(b'E')[0]

    def test_equality_and_hash(self):
        assert Alphabet(b'ACGTN', aliases={b'U': b'T'}) == Alphabet.DNA
        assert hash(Alphabet(b'ACGTN', aliases={b'U': b'T'})) == hash(Alphabet.DNA)
        assert Alphabet.DNA != Alphabet.RNA

    def test_aliases_do_not_make_alphabets_equal(self):
        # DNA and RNA build the same lookup table through their U/T aliases but decode differently
        assert Alphabet.DNA.decode(Alphabet.DNA.encode(b'ACGT')) == b'ACGT'
        assert Alphabet.RNA.decode(Alphabet.RNA.encode(b'ACGT')) == b'ACGU'
        assert Alphabet.DNA != Alphabet.RNA
        assert len({Alphabet.DNA, Alphabet.RNA}) == 2
