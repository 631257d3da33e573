"""
The xml data loader.

Registered on demand: the registry imports this module only after the
engine reports the "xml" capability, which requires xmltodict.
"""

from tdd.tdd_dataloaders import FileDataLoader, get_options, get_boolean_option, get_string_option
from tdd.tdd_serialize import deserialize


class XmlDataLoader(FileDataLoader):
    """xml(file[, {namespaces, attributePrefix, textKey}]): an XML document as nested hashes."""

    def load_file(self, engine, path, args):
        if len(args) > 2:
            raise ValueError("xml data loader needs 1 or 2 arguments: xml(filename[, options])")
        options = {}
        for name, value in get_options(args, 1).items():
            match name:
                case "namespaces":
                    options["process_namespaces"] = get_boolean_option(name, value)
                case "attributePrefix":
                    options["attr_prefix"] = get_string_option(name, value)
                case "textKey":
                    options["cdata_key"] = get_string_option(name, value)
                case _:
                    raise ValueError(f"Unknown option: {name!r}. The supported options are: "
                                     "namespaces, attributePrefix, textKey")
        with open(path, "rb") as f:
            return deserialize(f.read(), fmt="xml", **options)

