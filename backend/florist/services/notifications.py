from florist.utils.logging import get_logger

log = get_logger("notify")


def send_best_effort(action: str, fn, *args, **kwargs) -> bool:
    """
    Call a notifier method whose failure must not undo committed work.
    Exceptions and a False result are logged; the outcome is returned.
    """
    try:
        ok = fn(*args, **kwargs)
    except Exception as e:
        log.error("%s failed: %s: %s", action, type(e).__name__, e)
        return False
    if not ok:
        log.warning("%s reported failure", action)
        return False
    return True
