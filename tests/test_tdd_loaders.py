import sys

import pytest

from tdd.tdd_dataloaders import (
    default_registry, resolve_data_loader, create_default_registry,
    TextDataLoader, JsonDataLoader
)
from tdd.tdd_environment import DataLoaderEvaluationEnvironment
from tdd.tdd_errors import (
    CapabilityUnavailableError, UnknownLoaderError, LoaderNotFoundError,
    NotADataLoaderError, LoaderInstantiationError, ResolutionError
)
from tdd.tdd_interpreter import evaluate
from tdd.tdd_loaders import DataLoader, DataLoaderRegistry
from tdd.tdd_runtime import Engine


class EchoLoader(DataLoader):
    def load(self, engine, args):
        return {"echo": args}


class BrokenLoader(DataLoader):
    def __init__(self):
        raise RuntimeError("cannot start")

    def load(self, engine, args):
        return None


NOT_A_CLASS = EchoLoader()


@pytest.fixture
def engine():
    return Engine()


def test_builtin_names_resolve_to_fresh_instances(engine):
    first = default_registry.resolve(engine, "text")
    second = default_registry.resolve(engine, "text")
    assert isinstance(first, TextDataLoader)
    assert first is not second


def test_registry_names():
    names = default_registry.names()
    for name in ("properties", "text", "slicedText", "csv", "tdd", "tddSequence",
                 "json", "yaml", "toml", "now", "xml"):
        assert name in names
        assert name in default_registry
    assert "get" not in default_registry


def test_resolve_data_loader_uses_the_engine_registry(engine):
    assert isinstance(resolve_data_loader(engine, "json"), JsonDataLoader)

    registry = DataLoaderRegistry()
    registry.register("echo", EchoLoader)
    custom = Engine(registry=registry)
    assert isinstance(resolve_data_loader(custom, "echo"), EchoLoader)
    with pytest.raises(UnknownLoaderError):
        resolve_data_loader(custom, "json")


def test_xml_requires_its_capability():
    engine = Engine(capabilities={"xml": False})
    with pytest.raises(CapabilityUnavailableError) as excinfo:
        default_registry.resolve(engine, "xml")
    err = excinfo.value
    assert err.loader_name == "xml"
    assert err.capability == "xml"
    assert "xmltodict" in err.description
    assert err.message == ('Can\'t get the "xml" data loader: XML support (the xmltodict package) '
                           'is not available.')


def test_capability_is_checked_before_the_import():
    registry = DataLoaderRegistry()
    registry.register_on_demand("fancy", "tdd_no_such_module:Fancy", capability="fancy")

    unavailable = Engine(registry=registry, capabilities={"fancy": False})
    with pytest.raises(CapabilityUnavailableError) as excinfo:
        registry.resolve(unavailable, "fancy")
    assert 'the "fancy" capability is not available' in excinfo.value.message
    assert "tdd_no_such_module" not in sys.modules

    available = Engine(registry=registry, capabilities={"fancy": True})
    with pytest.raises(LoaderNotFoundError):
        registry.resolve(available, "fancy")


def test_xml_resolves_when_available():
    pytest.importorskip("xmltodict")
    from tdd.tdd_xml import XmlDataLoader

    loader = default_registry.resolve(Engine(capabilities={"xml": True}), "xml")
    assert isinstance(loader, XmlDataLoader)


def test_on_demand_without_capability():
    registry = DataLoaderRegistry()
    registry.register_on_demand("echo", f"{__name__}:EchoLoader")
    assert isinstance(registry.resolve(Engine(registry=registry), "echo"), EchoLoader)


def test_unknown_bare_name(engine):
    with pytest.raises(UnknownLoaderError) as excinfo:
        default_registry.resolve(engine, "nosuch")
    assert excinfo.value.message == "Unknown data loader: nosuch"
    assert isinstance(excinfo.value, ResolutionError)


@pytest.mark.parametrize(
    "name,error,fragment",
    [
        ("NoSuchClass", LoaderNotFoundError, "Data loader class not found: NoSuchClass"),
        ("tdd_no_such_module.Loader", LoaderNotFoundError, "class not found"),
        ("tdd.tdd_dataloaders:NoSuchLoader", LoaderNotFoundError, "class not found"),
        ("collections:OrderedDict", NotADataLoaderError, "must implement the DataLoader interface"),
        (f"{__name__}:NOT_A_CLASS", NotADataLoaderError, "must be a class"),
        ("tdd.tdd_dataloaders:FileDataLoader", NotADataLoaderError, "is abstract"),
        (f"{__name__}:BrokenLoader", LoaderInstantiationError, "cannot start"),
    ],
)
def test_import_path_failures(engine, name, error, fragment):
    with pytest.raises(error) as excinfo:
        default_registry.resolve(engine, name)
    assert fragment in excinfo.value.message
    assert excinfo.value.loader_name == name


def test_instantiation_failure_keeps_the_cause(engine):
    with pytest.raises(LoaderInstantiationError) as excinfo:
        default_registry.resolve(engine, f"{__name__}:BrokenLoader")
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.parametrize("sep", [".", ":"])
def test_import_path_resolves_a_loader(engine, sep):
    assert isinstance(default_registry.resolve(engine, f"{__name__}{sep}EchoLoader"), EchoLoader)


def test_call_by_import_path(engine):
    result = evaluate(f"{__name__}.EchoLoader(1, [x])", DataLoaderEvaluationEnvironment(engine))
    assert result == {"echo": [1, ["x"]]}


def test_registering_overrides_a_builtin(engine):
    registry = create_default_registry()
    registry.register("text", EchoLoader)
    custom = Engine(registry=registry)
    assert evaluate("text(a.txt)", DataLoaderEvaluationEnvironment(custom)) == {"echo": ["a.txt"]}
    assert isinstance(default_registry.resolve(engine, "text"), TextDataLoader)
