from typing import Any, Callable, Dict, List, Tuple
from loguru import logger


class PostCommitHooks:
    """
    Soft side effects that run only after the core transaction has committed.
    A failing hook is logged as a warning and never propagated.
    """

    def __init__(self):
        self._hooks: List[Tuple[str, Callable[..., Any], tuple, dict]] = []

    def add(self, name: str, func: Callable[..., Any], *args, **kwargs) -> None:
        self._hooks.append((name, func, args, kwargs))

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self) -> Dict[str, Any]:
        """Runs hooks in registration order. Returns each hook's result (None on failure)."""
        results: Dict[str, Any] = {}
        for name, func, args, kwargs in self._hooks:
            try:
                results[name] = func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Post-commit hook '{name}' failed: {e}")
                results[name] = None

        self._hooks.clear()
        return results
