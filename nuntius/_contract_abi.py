import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from functools import cached_property
from typing import Any, cast

from ethereum_rpc import LogEntry, LogTopic

from ._codec import DEFAULT_CODEC, Codec, EncodingError

logger = logging.getLogger(__name__)

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""A JSON ABI, or a part of it."""

# Anonymous events can have at most 4 indexed fields
ANONYMOUS_EVENT_INDEXED_FIELDS = 4

# Non-anonymous events use the first topic for the signature
EVENT_INDEXED_FIELDS = 3

FieldsSpec = Mapping[str, str] | Sequence[str] | Sequence[tuple[str | None, str]]
"""
Field declarations: a mapping of names to types, a list of types,
or a list of pairs of an optional name and a type.
"""

# ABI entry types that are accepted in a JSON ABI but cannot be invoked by name
_SKIPPED_ENTRY_TYPES = {"constructor", "fallback", "receive", "error"}


def _with_article(noun: str) -> str:
    return ("an " if noun[0] in "aeiou" else "a ") + noun


class UnknownMember(LookupError):
    """
    Raised when a name or a topic does not resolve to an entry of the contract's ABI,
    or resolves to an entry of a different kind.
    """


class EntryKind(Enum):
    """The kind of a named ABI entry."""

    FUNCTION = "function"
    EVENT = "event"


class FieldValues:
    """
    A container for field values of an event or a method return.

    Since Solidity allows fields at arbitrary positions to be anonymous,
    a dictionary cannot handle all the possibilities.
    """

    def __init__(self, values: Sequence[tuple[str | None, Any]]):
        names = [name for name, _value in values if name is not None]
        if len(names) != len(set(names)):
            raise ValueError("The values cannot have repeating names")

        self._values_seq = tuple(values)
        self._values_dict = {name: value for name, value in values if name is not None}
        self._representable_as_dict = len(names) == len(self._values_seq)

    @property
    def as_dict(self) -> dict[str, Any]:
        """
        Returns the equivalent dictionary representation.

        Raises ``ValueError`` if there are anonymous fields present.
        """
        if not self._representable_as_dict:
            raise ValueError(
                "This structure has some anonymous fields "
                "and therefore is not representable as a `dict`"
            )
        return dict(self._values_dict)

    @property
    def as_tuple(self) -> tuple[Any, ...]:
        """
        Returns the equivalent tuple representation
        (a tuple of the values with the field names omitted).
        """
        return tuple(item for _name, item in self._values_seq)

    def __getitem__(self, name: str) -> Any:
        """Returns the value with the given name."""
        return self._values_dict[name]

    def __getattr__(self, name: str) -> Any:
        """Returns the value with the given name."""
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values_dict[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldValues) and self._values_seq == other._values_seq

    def __repr__(self) -> str:
        return f"FieldValues({list(self._values_seq)!r})"


class Fields:
    """
    Describes a sequence of optionally named values of canonical ABI types
    (e.g. ``uint256`` or ``(address,bytes32)[]``).
    These can be function inputs, function outputs, or event fields.
    """

    names: tuple[str | None, ...]
    """Field names."""

    types: tuple[str, ...]
    """Field types in the canonical form."""

    def __init__(self, fields: FieldsSpec, codec: Codec = DEFAULT_CODEC):
        names: tuple[str | None, ...]
        if isinstance(fields, Mapping):
            names = tuple(fields)
            types = tuple(fields.values())
        elif all(isinstance(elem, str) for elem in fields):
            fields = cast("Sequence[str]", fields)
            names = tuple(None for _tp in fields)
            types = tuple(fields)
        else:
            fields = cast("Sequence[tuple[str | None, str]]", fields)
            names = tuple(name for name, _tp in fields)
            types = tuple(tp for _name, tp in fields)

        self.names = names
        self.types = types
        self._codec = codec

    @cached_property
    def canonical_form(self) -> str:
        """Returns the field types serialized in the canonical form as a string."""
        return "(" + ",".join(self.types) + ")"

    def decode(self, value_bytes: bytes) -> FieldValues:
        """
        Decodes the packed bytestring into a list of pairs
        of the original parameter/field name and the value.
        """
        values = self._codec.decode(self.types, value_bytes)
        return FieldValues(list(zip(self.names, values, strict=True)))

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return [
            {"name": name if name is not None else "", "type": tp}
            for name, tp in zip(self.names, self.types, strict=True)
        ]

    def __str__(self) -> str:
        fields = ", ".join(
            tp + ((" " + name) if name is not None else "")
            for name, tp in zip(self.names, self.types, strict=True)
        )
        return f"({fields})"


class EventFields(Fields):
    """Fields of an event structure."""

    indexed: tuple[bool, ...]
    """A sequence indicating whether the field at the given position is indexed."""

    def __init__(
        self,
        fields: FieldsSpec,
        indexed: Iterable[str] | Sequence[bool],
        codec: Codec = DEFAULT_CODEC,
    ):
        super().__init__(fields, codec)

        indexed = list(indexed)
        if all(isinstance(elem, bool) for elem in indexed) and len(indexed) == len(self.names):
            indexed_seq = tuple(cast("list[bool]", indexed))
        elif all(isinstance(elem, str) for elem in indexed):
            named_fields = {name for name in self.names if name is not None}
            if not set(indexed).issubset(named_fields):
                raise ValueError("All the names in `indexed` must be present in the fields list")
            indexed_seq = tuple(name in indexed for name in self.names)
        else:
            raise ValueError(
                "`indexed` must be a set of field names, "
                "or a sequence of booleans matching the number of fields"
            )

        self.indexed = indexed_seq

    def decode_log_entry(self, topics: Sequence[LogTopic], data: bytes) -> FieldValues:
        """
        Decodes the event fields from the given log entry topics (without the signature topic)
        and data.
        """
        indexed_types = [
            tp for tp, indexed in zip(self.types, self.indexed, strict=True) if indexed
        ]
        if len(topics) != len(indexed_types):
            raise EncodingError(
                f"The number of topics in the log entry ({len(topics)}) does not match "
                f"the number of indexed fields in the event ({len(indexed_types)})"
            )

        decoded_topics = iter(
            [self._codec.decode_topic(tp, topic) for tp, topic in zip(indexed_types, topics)]
        )
        nonindexed_types = [
            tp for tp, indexed in zip(self.types, self.indexed, strict=True) if not indexed
        ]
        decoded_data = iter(self._codec.decode(nonindexed_types, data))

        # Assemble preserving the field order
        values = [
            (name, next(decoded_topics) if indexed else next(decoded_data))
            for name, indexed in zip(self.names, self.indexed, strict=True)
        ]
        return FieldValues(values)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return [
            {"indexed": indexed, "name": name if name is not None else "", "type": tp}
            for name, tp, indexed in zip(self.names, self.types, self.indexed, strict=True)
        ]

    def __str__(self) -> str:
        params = []
        for name, tp, indexed in zip(self.names, self.types, self.indexed, strict=True):
            indexed_str = " indexed" if indexed else ""
            name_str = (" " + name) if name is not None else ""
            params.append(f"{tp}{indexed_str}{name_str}")
        return "(" + ", ".join(params) + ")"


class Mutability(Enum):
    """Possible states of a contract's function mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Mutability":
        entry_typed = cast("str", entry)

        values = {mutability.value: mutability for mutability in cls}
        if entry_typed not in values:
            raise ValueError(f"Unknown mutability identifier: {entry}")
        return values[entry_typed]

    @classmethod
    def from_legacy_flags(cls, *, constant: bool, payable: bool) -> "Mutability":
        """Maps the ``constant`` and ``payable`` flags of pre-0.6 Solidity ABIs."""
        if constant:
            return Mutability.VIEW
        if payable:
            return Mutability.PAYABLE
        return Mutability.NONPAYABLE

    @property
    def payable(self) -> bool:
        return self == Mutability.PAYABLE

    @property
    def constant(self) -> bool:
        return self in {Mutability.PURE, Mutability.VIEW}


def _canonical_type(param: Mapping[str, Any]) -> str:
    type_str = param["type"]
    if type_str.startswith("tuple"):
        components = ",".join(_canonical_type(component) for component in param["components"])
        return f"({components}){type_str[len('tuple'):]}"
    return cast("str", type_str)


def _parse_params(params: Iterable[Mapping[str, Any]]) -> list[tuple[str | None, str]]:
    return [(param.get("name") or None, _canonical_type(param)) for param in params]


class Function:
    """
    A contract function.

    .. note::

       Functions are routed by their :py:attr:`constant` flag:
       constant ones are evaluated with ``eth_call``, the rest are sent as transactions.
    """

    kind = EntryKind.FUNCTION

    name: str
    """The name of this function."""

    inputs: Fields
    """The input signature of this function."""

    outputs: Fields
    """The output signature of this function."""

    mutability: Mutability
    """The declared state mutability."""

    @classmethod
    def from_json(cls, entry: ABI_JSON, codec: Codec = DEFAULT_CODEC) -> "Function":
        """Creates this object from a JSON ABI function entry."""
        entry_typed = cast("Mapping[str, Any]", entry)

        if entry_typed.get("type", "function") != "function":
            raise ValueError(
                "Function object must be created from a JSON entry with type='function'"
            )

        if "stateMutability" in entry_typed:
            mutability = Mutability.from_json(entry_typed["stateMutability"])
        else:
            mutability = Mutability.from_legacy_flags(
                constant=entry_typed.get("constant", False),
                payable=entry_typed.get("payable", False),
            )

        return cls(
            name=entry_typed["name"],
            mutability=mutability,
            inputs=_parse_params(entry_typed.get("inputs", [])),
            outputs=_parse_params(entry_typed.get("outputs", [])),
            codec=codec,
        )

    def __init__(
        self,
        name: str,
        mutability: Mutability,
        inputs: FieldsSpec,
        outputs: None | FieldsSpec = None,
        codec: Codec = DEFAULT_CODEC,
    ):
        self.name = name
        self.mutability = mutability
        self.inputs = Fields(inputs, codec)
        self.outputs = Fields(outputs or [], codec)
        self._codec = codec

    @property
    def constant(self) -> bool:
        """Whether this function can be evaluated without a transaction."""
        return self.mutability.constant

    @property
    def payable(self) -> bool:
        """Whether this function is marked as payable."""
        return self.mutability.payable

    @cached_property
    def signature(self) -> str:
        """The canonical signature (e.g. ``transfer(address,uint256)``)."""
        return self.name + self.inputs.canonical_form

    @cached_property
    def selector(self) -> bytes:
        """Function's selector."""
        return self._codec.selector_of(self.signature)

    def encode_call(self, args: Sequence[Any]) -> bytes:
        """Returns the call payload: the selector followed by the encoded arguments."""
        return self._codec.encode_call(self.signature, self.inputs.types, args)

    def decode_output(self, output_bytes: bytes) -> Any:
        """
        Decodes the output from ABI-packed bytes.

        If there is only a single output, its value is returned.
        If all the fields in the output are unnamed, it is returned as a tuple of values.
        Otherwise it is returned as a :py:class:`FieldValues` object.
        """
        results = self.outputs.decode(output_bytes)

        if len(self.outputs.names) == 1:
            return results.as_tuple[0]
        if all(name is None for name in self.outputs.names):
            return results.as_tuple

        return results

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "function",
            "name": self.name,
            "stateMutability": self.mutability.value,
            "inputs": self.inputs.to_json(),
            "outputs": self.outputs.to_json(),
        }

    def __str__(self) -> str:
        returns = "" if not self.outputs.names else f" returns {self.outputs}"
        return f"function {self.name}{self.inputs} {self.mutability.value}{returns}"


class Event:
    """A contract event."""

    kind = EntryKind.EVENT

    name: str
    """The name of this event."""

    fields: EventFields
    """The event fields."""

    anonymous: bool
    """Whether the event is anonymous."""

    @classmethod
    def from_json(cls, entry: ABI_JSON, codec: Codec = DEFAULT_CODEC) -> "Event":
        """Creates this object from a JSON ABI event entry."""
        entry_typed = cast("Mapping[str, Any]", entry)

        if entry_typed["type"] != "event":
            raise ValueError("Event object must be created from a JSON entry with type='event'")

        inputs = entry_typed.get("inputs", [])
        return cls(
            name=entry_typed["name"],
            fields=_parse_params(inputs),
            indexed=[bool(input_.get("indexed", False)) for input_ in inputs],
            anonymous=entry_typed.get("anonymous", False),
            codec=codec,
        )

    def __init__(
        self,
        name: str,
        fields: FieldsSpec,
        indexed: Iterable[str] | Sequence[bool] = (),
        *,
        anonymous: bool = False,
        codec: Codec = DEFAULT_CODEC,
    ):
        self.name = name
        self.fields = EventFields(fields, indexed, codec)
        self.anonymous = anonymous
        self._codec = codec

        indexed_num = sum(self.fields.indexed)

        if anonymous and indexed_num > ANONYMOUS_EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Anonymous events can have at most {ANONYMOUS_EVENT_INDEXED_FIELDS} indexed fields"
            )
        if not anonymous and indexed_num > EVENT_INDEXED_FIELDS:
            raise ValueError(
                f"Non-anonymous events can have at most {EVENT_INDEXED_FIELDS} indexed fields"
            )

    @cached_property
    def signature(self) -> str:
        """The canonical signature (e.g. ``Transfer(address,address,uint256)``)."""
        return self.name + self.fields.canonical_form

    @cached_property
    def topic(self) -> LogTopic:
        """The topic representing this event's signature."""
        return self._codec.topic_of(self.signature)

    def decode_log_entry(self, log_entry: LogEntry) -> FieldValues:
        """
        Decodes the event fields from the given log entry.
        Fields that cannot be decoded (indexed reference types,
        which are hashed before saving them to the log) are set to ``None``.
        """
        topics = log_entry.topics
        if not self.anonymous:
            if not topics or topics[0] != self.topic:
                raise ValueError("This log entry belongs to a different event")
            topics = topics[1:]

        return self.fields.decode_log_entry(topics, log_entry.data)

    def to_json(self) -> ABI_JSON:
        """Returns this object's JSON ABI."""
        return {
            "type": "event",
            "name": self.name,
            "inputs": self.fields.to_json(),
            "anonymous": self.anonymous,
        }

    def __str__(self) -> str:
        return f"event {self.name}{self.fields}" + (" anonymous" if self.anonymous else "")


class ContractABI:
    """
    A contract's interface: its functions and events,
    resolvable by name, by canonical signature, and (for events) by topic.
    """

    @classmethod
    def from_json(cls, json_abi: ABI_JSON, codec: Codec = DEFAULT_CODEC) -> "ContractABI":
        """Creates this object from a JSON ABI (e.g. generated by a Solidity compiler)."""
        json_abi_typed = cast("Sequence[Mapping[str, ABI_JSON]]", json_abi)

        functions = []
        events = []

        for entry in json_abi_typed:
            entry_type = entry.get("type", "function")
            if entry_type == "function":
                functions.append(Function.from_json(entry, codec))

            elif entry_type == "event":
                events.append(Event.from_json(entry, codec))

            elif entry_type in _SKIPPED_ENTRY_TYPES:
                logger.debug("Skipping a `%s` ABI entry", entry_type)

            else:
                raise ValueError(f"Unknown ABI entry type: {entry_type}")

        return cls(functions=functions, events=events)

    def __init__(
        self,
        functions: None | Iterable[Function] = None,
        events: None | Iterable[Event] = None,
    ):
        self._functions = tuple(functions or [])
        self._events = tuple(events or [])

        self._functions_by_signature: dict[str, Function] = {}
        self._functions_by_name: dict[str, list[Function]] = {}
        for function in self._functions:
            if function.signature in self._functions_by_signature:
                raise ValueError(f"Function `{function.signature}` is declared more than once")
            self._functions_by_signature[function.signature] = function
            self._functions_by_name.setdefault(function.name, []).append(function)

        self._events_by_name: dict[str, Event] = {}
        self._events_by_topic: dict[LogTopic, Event] = {}
        for event in self._events:
            if event.name in self._events_by_name:
                raise ValueError(f"Event `{event.name}` is declared more than once")
            self._events_by_name[event.name] = event
            # Anonymous events do not put their signature in the topics
            if not event.anonymous:
                self._events_by_topic[event.topic] = event

    @property
    def functions(self) -> tuple[Function, ...]:
        """All the functions, in the declaration order."""
        return self._functions

    @property
    def events(self) -> tuple[Event, ...]:
        """All the events, in the declaration order."""
        return self._events

    def _kind_of(self, name: str) -> None | EntryKind:
        if name in self._functions_by_name or name in self._functions_by_signature:
            return EntryKind.FUNCTION
        if name in self._events_by_name:
            return EntryKind.EVENT
        return None

    def _unknown(self, name: str, expected: EntryKind) -> UnknownMember:
        actual = self._kind_of(name)
        if actual is None:
            return UnknownMember(f"The contract has no {expected.value} `{name}`")
        return UnknownMember(
            f"`{name}` is a contract {actual.value}, not {_with_article(expected.value)}"
        )

    def resolve_function(self, name: str) -> Function:
        """
        Returns the function with the given name or canonical signature
        (e.g. ``transfer`` or ``transfer(address,uint256)``).

        Overloaded functions can only be resolved by their signature.
        Raises :py:class:`UnknownMember` if there is no such function.
        """
        if name in self._functions_by_signature:
            return self._functions_by_signature[name]

        candidates = self._functions_by_name.get(name, [])
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            signatures = ", ".join(function.signature for function in candidates)
            raise UnknownMember(
                f"The function `{name}` is overloaded, use one of the signatures: {signatures}"
            )

        raise self._unknown(name, EntryKind.FUNCTION)

    def resolve_event(self, name: str) -> Event:
        """
        Returns the event with the given name.
        Raises :py:class:`UnknownMember` if there is no such event.
        """
        if name in self._events_by_name:
            return self._events_by_name[name]
        raise self._unknown(name, EntryKind.EVENT)

    def resolve_event_by_topic(self, topic: LogTopic) -> Event:
        """
        Returns the (non-anonymous) event whose signature hashes to the given topic.
        Raises :py:class:`UnknownMember` if there is no such event.
        """
        try:
            return self._events_by_topic[topic]
        except KeyError as exc:
            raise UnknownMember(
                f"The contract has no event with the topic {topic.hex()}"
            ) from exc

    def to_json(self) -> ABI_JSON:
        """Returns the serialized list of contract items (functions and events)."""
        return [item.to_json() for item in (*self._functions, *self._events)]

    def __str__(self) -> str:
        indent = "    "
        items = [indent + str(item) for item in (*self._functions, *self._events)]
        return "{\n" + "\n".join(items) + "\n}"
