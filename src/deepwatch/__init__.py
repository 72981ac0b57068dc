"""deepwatch: transparent read/write tracking and identity-preserving reconciliation for object graphs."""

from importlib.metadata import version as _version

__version__ = _version("deepwatch")

from deepwatch._tracking import get_pending_count
from deepwatch._util import HOLE, MISSING
from deepwatch.errors import (
    DeepwatchError,
    InvariantViolationError,
    ObsoleteObjectError,
    PreserveError,
    ReadOnlyPropertyError,
    UnsupportedOperationError,
)
from deepwatch.graph import WatchedGraph
from deepwatch.reads import (
    RecordedArrayValuesRead,
    RecordedOwnKeysRead,
    RecordedPropertyRead,
    RecordedRead,
    RecordedReadOnProxiedObject,
    RecordedUnspecificRead,
    RecordedValueRead,
)
from deepwatch.tracked import WriteTrackedDict, WriteTrackedList, WriteTrackedObject, WriteTrackedSet
from deepwatch.enhance import delete_property, enhance, is_enhanced
from deepwatch.obsolete import invalidate_object, is_obsolete
from deepwatch.preserve import (
    ObjRegistry,
    PreserveDiagnosis,
    PreserveOptions,
    normalize_list,
    normalize_lists,
    preserve,
    reconcile,
)
from deepwatch.reaction import Reaction, autorun, reaction
from deepwatch.action import action, transaction
# textual NOT auto-imported, opt-in only

__all__ = [
    "HOLE",
    "MISSING",
    "DeepwatchError",
    "InvariantViolationError",
    "ObsoleteObjectError",
    "PreserveError",
    "ReadOnlyPropertyError",
    "UnsupportedOperationError",
    "WatchedGraph",
    "RecordedRead",
    "RecordedValueRead",
    "RecordedReadOnProxiedObject",
    "RecordedPropertyRead",
    "RecordedOwnKeysRead",
    "RecordedArrayValuesRead",
    "RecordedUnspecificRead",
    "WriteTrackedObject",
    "WriteTrackedList",
    "WriteTrackedDict",
    "WriteTrackedSet",
    "enhance",
    "is_enhanced",
    "delete_property",
    "invalidate_object",
    "is_obsolete",
    "ObjRegistry",
    "PreserveOptions",
    "PreserveDiagnosis",
    "reconcile",
    "preserve",
    "normalize_list",
    "normalize_lists",
    "Reaction",
    "autorun",
    "reaction",
    "action",
    "transaction",
    "get_pending_count",
]
