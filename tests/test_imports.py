"""Tests for perch._internal.imports — module:qualname references."""

import pytest

from perch._internal.imports import callable_ref, import_ref, is_importable_ref
from perch.middleware.gates import Authenticated
from perch.routing.router import Router


class TestImportRef:
    def test_class(self) -> None:
        assert import_ref("perch.middleware.gates:Authenticated") is Authenticated

    def test_nested_attribute(self) -> None:
        assert import_ref("perch.routing.router:Router.match") is Router.match

    @pytest.mark.parametrize("ref", ["perch.routing", ":Router", "perch.routing:"])
    def test_malformed(self, ref: str) -> None:
        with pytest.raises(ValueError, match="module:qualname"):
            import_ref(ref)

    def test_locals_rejected(self) -> None:
        with pytest.raises(ValueError, match="inside a function"):
            import_ref("app:make.<locals>.handler")

    def test_missing_module(self) -> None:
        with pytest.raises(ModuleNotFoundError):
            import_ref("perch.nothing_here:thing")

    def test_missing_attribute(self) -> None:
        with pytest.raises(AttributeError):
            import_ref("perch.routing.router:Nope")


class TestCallableRef:
    def test_round_trip(self) -> None:
        ref = callable_ref(Authenticated)
        assert ref == "perch.middleware.gates:Authenticated"
        assert is_importable_ref(ref)

    def test_local_function(self) -> None:
        def handler() -> None:
            pass

        assert not is_importable_ref(callable_ref(handler))

    def test_main_module(self) -> None:
        assert not is_importable_ref("__main__:handler")
