import logging
from collections.abc import Callable
from concurrent.futures import Future
from threading import Thread as BaseThread

logger = logging.getLogger(__name__)


class Thread[T](BaseThread):
    """A container thread whose outcome lands on a future.

    Names are prefixed with ``mdb-`` so container threads are easy to pick
    out of a thread dump. Nothing joins a deployment's threads until it is
    stopped, so an exception that escapes the target is logged as well as
    set on the future.
    """

    def __init__(self, target: Callable[[], T], /, *, name: str):
        super().__init__(name=f"mdb-{name}")
        self.__target = target
        self.__future = Future[T]()

    def run(self):
        if not self.__future.set_running_or_notify_cancel():
            return

        try:
            result = self.__target()
        except BaseException as exception:
            logger.exception("Thread %s failed", self.name)
            self.__future.set_exception(exception)
        else:
            self.__future.set_result(result)

    @property
    def future(self) -> Future[T]:
        return self.__future
