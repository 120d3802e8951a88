from jumpalign.utils.resources import RESOURCES, jit


class TestResources:
    def test_package(self):
        assert RESOURCES.package == 'jumpalign'

    def test_has_module(self):
        assert RESOURCES.has_module('numpy')
        assert not RESOURCES.has_module('jumpalign_missing_module')

    def test_accelerated(self):
        assert RESOURCES.accelerated == RESOURCES.has_module('numba')


class TestJit:
    def test_bare(self):
        @jit
        def add(a, b): return a + b
        assert add(2, 3) == 5

    def test_configured(self):
        @jit(nopython=True, cache=False)
        def mul(a, b): return a * b
        assert mul(2, 3) == 6
