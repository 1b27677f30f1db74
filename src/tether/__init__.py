"""tether: fine-grained reactive state for Python."""

from importlib.metadata import version as _version

__version__ = _version("tether-state")

from tether._tracking import ITERATE, LENGTH
from tether.reactive import (
    ReactiveDict,
    ReactiveList,
    ReactiveObject,
    ReactiveView,
    create_reactive_state,
    is_reactive,
    to_raw,
    wrap,
)
from tether.effect import Effect, EffectState, run_effect
from tether.scheduler import (
    Scheduler,
    action,
    drain,
    flush,
    get_pending_count,
    set_error_handler,
    set_scheduler,
    transaction,
)
# debug and textual NOT auto-imported — opt-in only

__all__ = [
    "ITERATE",
    "LENGTH",
    "ReactiveDict",
    "ReactiveList",
    "ReactiveObject",
    "ReactiveView",
    "create_reactive_state",
    "is_reactive",
    "to_raw",
    "wrap",
    "Effect",
    "EffectState",
    "run_effect",
    "Scheduler",
    "action",
    "drain",
    "flush",
    "get_pending_count",
    "set_error_handler",
    "set_scheduler",
    "transaction",
]
