from __future__ import annotations
import json, logging, os, time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, TypeVar

from .llm_cfg import client as llm_client

log = logging.getLogger(__name__)

T = TypeVar("T")

# Shared so that a timed-out call does not block the caller; the worker
# finishes in the background and its result is discarded.
_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="llm")


def backend_in_use() -> str:
    b = (os.getenv("LLM_BACKEND") or "").lower()
    return b if b in ("azure", "openai") else "none"


def run_with_timeout(fn: Callable[[], T], timeout: Optional[float]) -> T:
    """Run ``fn`` on the shared pool; raises TimeoutError past ``timeout`` seconds."""
    fut = _EXECUTOR.submit(fn)
    try:
        return fut.result(timeout=timeout)
    except FutureTimeout:
        fut.cancel()
        raise TimeoutError(f"call exceeded {timeout}s") from None


def _log_call(kind: str, backend: str, prompt: str, raw: Any, t0: float) -> None:
    path = os.getenv("LLM_LOG_PATH")
    if not path:
        return
    row = {
        "ts": round(time.time(), 3),
        "kind": kind,
        "backend": backend,
        "prompt": (prompt or "")[:800],
        "raw": raw if isinstance(raw, (dict, list)) else str(raw)[:2000],
        "rt_ms": int((time.time() - t0) * 1000),
    }
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(row, ensure_ascii=False) + "\n")
    except OSError as exc:
        log.debug("llm log write failed: %s", exc)


def complete(system: str, user: str, *, kind: str = "chat", temperature: float = 0.7, max_tokens: int = 2000) -> str:
    """Single chat completion against the configured backend; returns raw content."""
    backend = backend_in_use()
    if backend == "none":
        raise RuntimeError("no LLM backend configured")
    t0 = time.time()
    cli, model = llm_client(backend)
    resp = cli.chat.completions.create(
        model=model,
        messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
        temperature=temperature, max_tokens=max_tokens, top_p=1.0,
    )
    content = resp.choices[0].message.content if resp.choices else None
    _log_call(kind, backend, user, content, t0)
    return content or ""


def parse_json_payload(raw: str) -> Any:
    """Parse model output that may be wrapped in a markdown code fence."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return json.loads(text)
