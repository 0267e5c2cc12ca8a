"""Text and collection nodes.

These nodes are lenient: a malformed input is reported as an error entry in
the run log and the output falls back to an empty value, the run continues.
"""

from typing import Any

from nodeflow.graph.model import LogicalCategory, Node, OperationType, PortType
from nodeflow.graph.node import NodeDefinition, ResolveContext
from nodeflow.nodes.core import dump_value
from nodeflow.nodes.factory import data_in, data_out
from nodeflow.runtime.run_state import LogSeverity

ANY = LogicalCategory.ANY
STRING = LogicalCategory.STRING
NUMBER = LogicalCategory.NUMBER
ARRAY = LogicalCategory.ARRAY
OBJECT = LogicalCategory.OBJECT


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return dump_value(value)


# === TEXT ===


def concatenate_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "String 1", STRING), data_in(node_id, "String 2", STRING)],
        [data_out(node_id, "Result", STRING)],
    )


def resolve_concatenate(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Result"): as_text(ctx.input("String 1")) + as_text(ctx.input("String 2"))}


def to_string_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Input")], [data_out(node_id, "Output", STRING)]


def resolve_to_string(ctx: ResolveContext) -> dict[str, Any]:
    value = ctx.input("Input")
    return {ctx.output_key("Output"): "None" if value is None else as_text(value)}


def string_length_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Source", STRING)], [data_out(node_id, "Length", NUMBER)]


def resolve_string_length(ctx: ResolveContext) -> dict[str, Any]:
    return {ctx.output_key("Length"): len(as_text(ctx.input("Source")))}


def split_string_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Source", STRING), data_in(node_id, "Delimiter", STRING)],
        [data_out(node_id, "Result", ARRAY)],
    )


def split_string_defaults(node: Node) -> dict[str, Any]:
    return {"Delimiter": node.config.get("split_delimiter", ",")}


def resolve_split_string(ctx: ResolveContext) -> dict[str, Any]:
    source = as_text(ctx.input("Source"))
    delimiter = as_text(ctx.input("Delimiter"))
    # An empty delimiter splits into characters
    parts = source.split(delimiter) if delimiter else list(source)
    return {ctx.output_key("Result"): parts}


# === COLLECTIONS ===


def union_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Item 1"), data_in(node_id, "Item 2")],
        [data_out(node_id, "Collection", ARRAY)],
    )


def resolve_union(ctx: ResolveContext) -> dict[str, Any]:
    collected = [
        ctx.inputs.get(port.id)
        for port in ctx.node.data_inputs()
        if ctx.inputs.get(port.id) is not None
    ]
    return {ctx.output_key("Collection"): collected}


def get_item_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Collection", ARRAY), data_in(node_id, "Index", NUMBER)],
        [data_out(node_id, "Item")],
    )


def resolve_get_item(ctx: ResolveContext) -> dict[str, Any]:
    collection = ctx.input("Collection")
    index = ctx.input("Index")
    item = None

    if not isinstance(collection, list):
        ctx.log("Input 'Collection' is not an array.", LogSeverity.ERROR)
    elif isinstance(index, bool) or not (
        isinstance(index, int) or (isinstance(index, float) and index.is_integer())
    ):
        ctx.log("Input 'Index' is not an integer.", LogSeverity.ERROR)
    elif not 0 <= int(index) < len(collection):
        ctx.log(
            f"Index {int(index)} out of bounds for collection length {len(collection)}.",
            LogSeverity.DEBUG,
        )
    else:
        item = collection[int(index)]

    return {ctx.output_key("Item"): item}


def collection_length_ports(node_id: str, config: dict[str, Any]):
    return [data_in(node_id, "Collection", ARRAY)], [data_out(node_id, "Length", NUMBER)]


def resolve_collection_length(ctx: ResolveContext) -> dict[str, Any]:
    collection = ctx.input("Collection")
    if not isinstance(collection, list):
        ctx.log("Input 'Collection' is not an array.", LogSeverity.ERROR)
        return {ctx.output_key("Length"): 0}
    return {ctx.output_key("Length"): len(collection)}


# === OBJECTS ===


def get_property_ports(node_id: str, config: dict[str, Any]):
    return (
        [data_in(node_id, "Source", OBJECT), data_in(node_id, "Key", STRING)],
        [data_out(node_id, "Value")],
    )


def resolve_get_property(ctx: ResolveContext) -> dict[str, Any]:
    source = ctx.input("Source")
    key = ctx.input("Key")
    value = None

    if not isinstance(source, dict):
        ctx.log("Input 'Source' is not an object.", LogSeverity.ERROR)
    elif not isinstance(key, str):
        ctx.log("Input 'Key' is not a string.", LogSeverity.ERROR)
    elif key not in source:
        ctx.log(f"Key '{key}' not found in source.", LogSeverity.DEBUG)
    else:
        value = source[key]

    return {ctx.output_key("Value"): value}


def set_property_ports(node_id: str, config: dict[str, Any]):
    return (
        [
            data_in(node_id, "Source", OBJECT),
            data_in(node_id, "Key", STRING),
            data_in(node_id, "Value"),
        ],
        [data_out(node_id, "Result", OBJECT)],
    )


def resolve_set_property(ctx: ResolveContext) -> dict[str, Any]:
    """Copy of 'Source' with 'Key' set to 'Value'. The source is never mutated."""
    source = ctx.input("Source")
    key = ctx.input("Key")

    if not isinstance(source, dict):
        ctx.log("Input 'Source' is not an object.", LogSeverity.ERROR)
        result: dict[str, Any] = {}
    elif not isinstance(key, str):
        ctx.log("Input 'Key' is not a string.", LogSeverity.ERROR)
        result = dict(source)
    else:
        result = {**source, key: ctx.input("Value")}

    return {ctx.output_key("Result"): result}


def construct_object_ports(node_id: str, config: dict[str, Any]):
    return (
        [
            data_in(node_id, "Key 1", STRING),
            data_in(node_id, "Value 1", description="Value stored under 'Key 1'."),
        ],
        [data_out(node_id, "Object", OBJECT)],
    )


def resolve_construct_object(ctx: ResolveContext) -> dict[str, Any]:
    """Pair data inputs in order as (key, value); extra key/value port pairs are allowed."""
    ports = [p for p in ctx.node.input_ports if p.port_type == PortType.DATA]
    constructed: dict[str, Any] = {}

    for key_port, value_port in zip(ports[0::2], ports[1::2]):
        key = ctx.inputs.get(key_port.id)
        if isinstance(key, str) and key.strip():
            constructed[key] = ctx.inputs.get(value_port.id)
        elif key is not None:
            ctx.log(
                f"Invalid key type or empty key ({key!r}) for CONSTRUCT_OBJECT port "
                f"'{key_port.name}'. Skipping.",
                LogSeverity.ERROR,
            )

    return {ctx.output_key("Object"): constructed}


def _definition(op, name, description, ports, resolve, category="Data Structures", **kwargs):
    return NodeDefinition(
        operation_type=op,
        name=name,
        description=description,
        category=category,
        port_generator=ports,
        resolve_outputs=resolve,
        **kwargs,
    )


DEFINITIONS = [
    _definition(
        OperationType.CONCATENATE, "Concatenate", "Joins 'String 1' and 'String 2'.",
        concatenate_ports, resolve_concatenate, category="Text Manipulation",
    ),
    _definition(
        OperationType.TO_STRING, "To String", "Converts any input to text.",
        to_string_ports, resolve_to_string, category="Text Manipulation",
    ),
    _definition(
        OperationType.STRING_LENGTH, "String Length", "Gets the length of a string.",
        string_length_ports, resolve_string_length, category="Text Manipulation",
    ),
    _definition(
        OperationType.SPLIT_STRING, "Split String", "Splits 'Source' by 'Delimiter'.",
        split_string_ports, resolve_split_string, category="Text Manipulation",
        default_config={"split_delimiter": ","},
        input_defaults=split_string_defaults,
    ),
    _definition(
        OperationType.UNION, "Union", "Collects every provided input into an array.",
        union_ports, resolve_union,
    ),
    _definition(
        OperationType.GET_ITEM_AT_INDEX, "Get Item At Index", "Reads one element of an array.",
        get_item_ports, resolve_get_item,
    ),
    _definition(
        OperationType.COLLECTION_LENGTH, "Collection Length", "Number of elements in an array.",
        collection_length_ports, resolve_collection_length,
    ),
    _definition(
        OperationType.GET_PROPERTY, "Get Property", "Reads 'Key' from an object.",
        get_property_ports, resolve_get_property,
    ),
    _definition(
        OperationType.SET_PROPERTY, "Set Property", "Returns a copy of an object with 'Key' set.",
        set_property_ports, resolve_set_property,
    ),
    _definition(
        OperationType.CONSTRUCT_OBJECT, "Construct Object", "Builds an object from key/value pairs.",
        construct_object_ports, resolve_construct_object,
    ),
]
