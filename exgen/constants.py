"""Named constants — markers, sentinels and built-in class names shared by the builders."""

from __future__ import annotations

import re

# Verbatim target-code injection: ``__elixir__("code {0}", arg0)``
INJECTION_MARKER = "__elixir__"
INJECTION_PLACEHOLDER_PATTERN = re.compile(r"\{(\d+)\}")

# Compiler-synthesized temporaries (``_g``, ``_g1``, ``g2`` …)
INFRA_TEMP_PATTERN = re.compile(r"^_?g\d*$")

# Names the front-end uses for the method receiver
RESERVED_RECEIVER_NAMES = frozenset({"this", "_this", "self", "__this__"})
RECEIVER_BINDER = "struct"

# Loop-control sentinels thrown from inside loop bodies
BREAK_ATOM = "break"
CONTINUE_ATOM = "continue"
LOOP_CONTINUE_TAG = "cont"
LOOP_HALT_TAG = "halt"
LOOP_NO_STATE_ATOM = "ok"
LOOP_STATE_BINDER = "loop_state"
LOOP_SIGNAL_BINDER = "signal"

UNMATCHED_VALUE_MESSAGE = "unmatched value"
NULL_COALESCING_TEMP = "tmp"
SWITCH_VALUE_TEMP = "value"
POPPED_VALUE_TEMP = "popped"
ITERATION_COUNTER = "n"

STRING_CLASS = "String"
ARRAY_CLASS = "Array"
STD_CLASS = "Std"
MATH_CLASS = "Math"
STRING_TOOLS_CLASS = "StringTools"

MAP_CLASS_NAMES = frozenset(
    {
        "Map",
        "haxe.ds.Map",
        "haxe.ds.StringMap",
        "haxe.ds.IntMap",
        "haxe.ds.ObjectMap",
        "haxe.ds.EnumValueMap",
        "StringMap",
        "IntMap",
        "ObjectMap",
    }
)
MAP_INSERT_METHOD = "set"

STATIC_STATE_MODULE = "Process"
