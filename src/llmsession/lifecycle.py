# src/llmsession/lifecycle.py
"""
Opt-in process signal binding for AIResponder.

Nothing in llmsession registers signal handlers on its own. Applications
that want the responder flushed on SIGINT/SIGTERM call
`install_shutdown_signals` once from inside their running event loop.
"""

import asyncio
import logging
import signal
from typing import Iterable, Optional

from .responder import AIResponder

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_signals(
    responder: AIResponder,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> "asyncio.Event":
    """
    Run `responder.shutdown()` when one of `signals` arrives, then stop the loop.

    Repeated signals do not run the shutdown again.

    Args:
        responder: The responder to shut down.
        loop: Event loop to bind to; the running loop by default.
        signals: Signals to handle.

    Returns:
        An event set once the shutdown has completed.
    """
    loop = loop or asyncio.get_running_loop()
    done = asyncio.Event()
    state = {"task": None}

    async def _shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}; shutting down responder.")
        try:
            await responder.shutdown()
        except Exception as e:
            logger.error(f"Error during signal-triggered shutdown: {e}", exc_info=True)
        finally:
            done.set()
            loop.stop()

    def _handle(sig: signal.Signals) -> None:
        if state["task"] is not None:
            logger.debug(f"Ignoring {sig.name}; shutdown already in progress.")
            return
        state["task"] = loop.create_task(_shutdown(sig))

    installed = []
    for sig in signals:
        try:
            loop.add_signal_handler(sig, _handle, sig)
            installed.append(sig.name)
        except (NotImplementedError, RuntimeError) as e:
            logger.warning(f"Could not install handler for {sig.name}: {e}")
    logger.debug(f"Shutdown signal handlers installed for: {installed}")
    return done
