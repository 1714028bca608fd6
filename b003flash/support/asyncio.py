import asyncio
import functools
import threading


__all__ = ["asyncio_run_in_thread", "async_test"]


def asyncio_run_in_thread(coro):
    """
    Run ``coro`` to completion on a fresh event loop in a separate thread and return its result.

    Works regardless of whether the calling thread already has an event loop running.
    """
    outcome = {}

    def target():
        loop = asyncio.new_event_loop()
        try:
            outcome["result"] = loop.run_until_complete(coro)
        except BaseException as exn:
            outcome["exception"] = exn
        finally:
            loop.close()

    thread = threading.Thread(target=target)
    thread.start()
    thread.join()
    if "exception" in outcome:
        raise outcome["exception"]
    return outcome.get("result")


def async_test(case):
    @functools.wraps(case)
    def wrapper(*args, **kwargs):
        return asyncio_run_in_thread(case(*args, **kwargs))
    return wrapper
