"""
resource_vm.types — value, definition and outcome types shared across the runtime.
"""

from .module import (FieldDef, FunctionDef, Instr, ModuleDef, StructDef,
                     TypeTag, instr, make_function, make_struct)
from .outcome import Abort, Outcome, Status, Success
from .values import (Address, ModuleId, ResourceType, StructTag, StructValue,
                     to_address, to_hex)

__all__ = [
    "Address",
    "ModuleId",
    "StructTag",
    "ResourceType",
    "StructValue",
    "to_address",
    "to_hex",
    "TypeTag",
    "FieldDef",
    "StructDef",
    "Instr",
    "instr",
    "FunctionDef",
    "ModuleDef",
    "make_function",
    "make_struct",
    "Status",
    "Success",
    "Abort",
    "Outcome",
]
