"""Entry point of a sandboxed check unit process.

Runs in a freshly spawned interpreter. Before any unit code is touched the
process drops its inherited environment, caps its own memory, CPU time,
file size and process count, and then evaluates the unit against an
``Inspector``. Exactly one message is sent back over the pipe:

    {"status": "ok", "implemented": bool, "details": {...}}
    {"status": "error", "error": "<reason>", "message": "..."}
"""

import _thread
import importlib
import json
import os
import resource
import signal
import types
from collections.abc import Callable
from typing import Any

from assessor.sandbox.inspection import Inspector, delegated_client_factory
from assessor.sandbox.kinds import build_check_kind

MAX_MESSAGE_LENGTH = 500

SAFE_BUILTINS = (
    "abs", "all", "any", "bool", "bytes", "callable", "chr", "dict", "divmod", "enumerate",
    "filter", "float", "format", "frozenset", "hasattr", "hash", "int", "isinstance",
    "issubclass", "iter", "len", "list", "map", "max", "min", "next", "ord", "pow", "range",
    "repr", "reversed", "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "AssertionError", "AttributeError", "Exception", "IndexError",
    "KeyError", "LookupError", "NotImplementedError", "PermissionError", "RuntimeError",
    "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
)


class InvalidResultError(Exception):
    """The unit returned something other than a bool or an implemented/details mapping."""


def scrub_environment(env: dict[str, str]) -> None:
    os.environ.clear()
    os.environ.update(env)


def _lower_limit(limit: int, soft: int, hard: int) -> None:
    _, current_hard = resource.getrlimit(limit)
    if current_hard != resource.RLIM_INFINITY:
        soft = min(soft, current_hard)
        hard = min(hard, current_hard)
    resource.setrlimit(limit, (soft, hard))


def apply_limits(memory_limit_mb: int, cpu_limit_seconds: int) -> None:
    """Cap this process's memory, CPU time and writable file size."""
    memory_bytes = memory_limit_mb * 1024 * 1024
    _lower_limit(resource.RLIMIT_AS, memory_bytes, memory_bytes)
    # SIGXCPU at the soft limit, SIGKILL one second later
    _lower_limit(resource.RLIMIT_CPU, cpu_limit_seconds, cpu_limit_seconds + 1)
    # Writes fail with EFBIG instead of killing the process
    signal.signal(signal.SIGXFSZ, signal.SIG_IGN)
    _lower_limit(resource.RLIMIT_FSIZE, 0, 0)


def forbid_new_processes() -> None:
    """Stop this process from creating processes or threads from now on."""
    _lower_limit(resource.RLIMIT_NPROC, 0, 0)


def _module_view(module: types.ModuleType) -> types.SimpleNamespace:
    """Public, non-module attributes of an allow-listed module."""
    names = getattr(module, "__all__", None) or [n for n in dir(module) if not n.startswith("_")]
    attributes = {}
    for name in names:
        value = getattr(module, name, None)
        if value is None or isinstance(value, types.ModuleType):
            continue
        attributes[name] = value
    return types.SimpleNamespace(**attributes)


def restricted_builtins(allowed_modules: list[str]) -> dict[str, Any]:
    import builtins

    allowed = frozenset(allowed_modules)

    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level:
            msg = "relative imports are not available to check units"
            raise ImportError(msg)
        if name.split(".")[0] not in allowed:
            msg = f"module '{name}' is not available to check units"
            raise ImportError(msg)
        if fromlist:
            return _module_view(importlib.import_module(name))
        return _module_view(importlib.import_module(name.split(".")[0]))

    namespace = {name: getattr(builtins, name) for name in SAFE_BUILTINS}
    namespace["__import__"] = guarded_import
    namespace["__build_class__"] = builtins.__build_class__
    return namespace


def normalize_result(value: Any) -> dict[str, Any]:
    """Convert a unit's return value into an ok message."""
    if isinstance(value, bool):
        return {"status": "ok", "implemented": value, "details": {}}
    if isinstance(value, dict) and isinstance(value.get("implemented"), bool):
        details = value.get("details", {})
        if not isinstance(details, dict):
            msg = f"details must be a mapping, got {type(details).__name__}"
            raise InvalidResultError(msg)
        try:
            details = json.loads(json.dumps(details, default=str))
        except (TypeError, ValueError) as e:
            msg = f"details are not serializable: {e}"
            raise InvalidResultError(msg) from e
        return {"status": "ok", "implemented": value["implemented"], "details": details}
    msg = f"check must return a bool or {{'implemented': bool, 'details': dict}}, got {type(value).__name__}"
    raise InvalidResultError(msg)


def _unit_entry(gate, run_module, code, namespace, ctx, box, done):
    try:
        gate.acquire()
        run_module(code, namespace)
        check = namespace.get("check")
        box.append(("ok", check(ctx)) if callable(check) else ("missing", None))
    except BaseException as e:
        box.append(("raised", e))
    finally:
        done.release()


# Everything _unit_entry can see besides its arguments
_ENTRY_BUILTINS = {"BaseException": BaseException, "callable": callable}


def run_script(
    source: bytes,
    unit_ref: str,
    ctx: Inspector,
    allowed_modules: list[str],
    seal: Callable[[], None] | None = None,
) -> Any:
    """Execute a script unit and return whatever its ``check(ctx)`` returned.

    The unit body and its ``check`` run on a thread started straight from C
    with an entry function whose globals hold only two builtins, so walking
    frames back from unit code ends there instead of at this module. ``seal``
    is called once that thread exists and before any unit code runs.
    """
    code = compile(source, f"<check unit {unit_ref}>", "exec")
    namespace: dict[str, Any] = {
        "__builtins__": restricted_builtins(allowed_modules),
        "__name__": "check_unit",
    }
    entry = types.FunctionType(
        _unit_entry.__code__, {"__builtins__": dict(_ENTRY_BUILTINS)}, "check_unit_entry"
    )
    box: list[tuple[str, Any]] = []
    gate = _thread.allocate_lock()
    done = _thread.allocate_lock()
    gate.acquire()
    done.acquire()
    _thread.start_new_thread(entry, (gate, exec, code, namespace, ctx, box, done))
    if seal is not None:
        seal()
    gate.release()
    done.acquire()

    if not box:
        msg = "unit thread ended without an outcome"
        raise RuntimeError(msg)
    outcome, value = box[0]
    if outcome == "raised":
        raise value
    if outcome == "missing":
        msg = "unit does not define check(ctx)"
        raise InvalidResultError(msg)
    return value


def evaluate(payload: dict[str, Any], seal: Callable[[], None] | None = None) -> dict[str, Any]:
    target = payload["target"]
    ctx = Inspector(
        target=target,
        client_factory=delegated_client_factory(
            payload.pop("credentials"),
            target["region"],
            endpoint_url=payload.get("inspection_endpoint_url"),
            timeout_seconds=payload.get("api_timeout_seconds", 10),
        ),
        allowed_services=payload["allowed_services"],
    )
    if payload["unit_format"] == "declarative":
        if seal is not None:
            seal()
        kind = build_check_kind(json.loads(payload["source"]))
        outcome = kind.evaluate(ctx)
        return normalize_result(outcome.model_dump())
    return normalize_result(
        run_script(payload["source"], payload["unit_ref"], ctx, payload["allowed_modules"], seal)
    )


def _error(reason: str, message: str) -> dict[str, Any]:
    return {"status": "error", "error": reason, "message": message[:MAX_MESSAGE_LENGTH]}


def run_unit(payload: dict[str, Any], conn) -> None:
    """Process target: isolate, evaluate one unit, report over ``conn``."""
    try:
        scrub_environment(payload["env"])
        apply_limits(payload["memory_limit_mb"], payload["cpu_limit_seconds"])
        message = evaluate(payload, seal=forbid_new_processes)
    except MemoryError:
        message = _error("resource_exceeded", "memory limit exceeded")
    except InvalidResultError as e:
        message = _error("invalid_result", str(e))
    except Exception as e:
        message = _error("unit_error", f"{type(e).__name__}: {e}")

    try:
        conn.send(message)
    finally:
        conn.close()
