"""
Graceful Shutdown Handler

Обеспечивает корректное завершение работы бота при остановке:
- Остановка таймера lifecycle job (текущий цикл не ожидается)
- Остановка веб-сервера с webhook
- Закрытие HTTP-сессий (CloudPayments, Telegram)
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

ShutdownHandler = Callable[[], Awaitable[None]]


class GracefulShutdownManager:
    """
    Менеджер корректного завершения работы бота.

    Выполняет зарегистрированные обработчики по порядку регистрации;
    ошибка одного обработчика не мешает выполнению следующих.
    """

    def __init__(self, timeout: int = 30):
        """
        Initialize graceful shutdown manager.

        Args:
            timeout: Maximum time in seconds for all shutdown handlers
        """
        self.timeout = timeout
        self.shutdown_handlers: List[ShutdownHandler] = []
        self.is_shutting_down = False

        # Statistics
        self.shutdown_initiated_at: Optional[datetime] = None
        self.shutdown_completed_at: Optional[datetime] = None

    def register_shutdown_handler(self, handler: ShutdownHandler):
        """
        Register a shutdown handler to be called during shutdown.

        Handlers are called in registration order.

        Args:
            handler: Async function to call during shutdown
        """
        self.shutdown_handlers.append(handler)
        logging.debug(f"Graceful shutdown: Registered handler {handler.__name__}")

    async def initiate_shutdown(self, reason: Optional[str] = None):
        """
        Run all shutdown handlers.

        Args:
            reason: What triggered shutdown (optional, for logging)
        """
        if self.is_shutting_down:
            logging.warning("Graceful shutdown: Already shutting down, ignoring duplicate request")
            return

        self.is_shutting_down = True
        self.shutdown_initiated_at = datetime.now()

        reason_info = f" ({reason})" if reason else ""
        logging.info(f"Graceful shutdown: Initiating shutdown{reason_info}")

        try:
            await asyncio.wait_for(self._execute_shutdown_handlers(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logging.warning(f"Graceful shutdown: Timeout ({self.timeout}s) reached, remaining handlers skipped")

        self.shutdown_completed_at = datetime.now()
        duration = (self.shutdown_completed_at - self.shutdown_initiated_at).total_seconds()
        logging.info(f"Graceful shutdown: Completed in {duration:.2f}s")

    async def _execute_shutdown_handlers(self):
        """Execute all registered shutdown handlers."""
        if not self.shutdown_handlers:
            logging.debug("Graceful shutdown: No shutdown handlers registered")
            return

        logging.info(f"Graceful shutdown: Executing {len(self.shutdown_handlers)} shutdown handlers")

        for i, handler in enumerate(self.shutdown_handlers, 1):
            handler_name = getattr(handler, "__name__", repr(handler))
            try:
                logging.debug(f"Graceful shutdown: Executing handler {i}/{len(self.shutdown_handlers)}: {handler_name}")
                await handler()
            except Exception as e:
                logging.error(
                    f"Graceful shutdown: Error in handler {handler_name}: {e}",
                    exc_info=True
                )
