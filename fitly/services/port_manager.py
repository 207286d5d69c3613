"""
Port Manager - Pool borné de ports locaux pour les sessions chromedriver.

Chaque session navigateur complète démarre son propre chromedriver sur un port
réservé ici, ce qui évite que deux sessions concurrentes se partagent le même
port de contrôle.

Le verrou n'est tenu que pendant le scan et le changement de flag, jamais
pendant la session navigateur elle-même.
"""
import time
from contextlib import contextmanager
from threading import Condition, Lock
from typing import Dict, Iterator, List, Optional

from fitly.core import config
from fitly.core.exceptions import ExhaustedError
from fitly.core.logging import get_logger

logger = get_logger(__name__)


class PortManager:
    """Alloue des ports exclusifs dans [base_port, base_port + port_range)."""

    def __init__(self, base_port: int, port_range: int):
        if port_range <= 0:
            raise ValueError("port_range must be positive")
        self.base_port = base_port
        self.port_range = port_range
        self._ports: Dict[int, bool] = {base_port + i: False for i in range(port_range)}
        self._lock = Lock()
        self._freed = Condition(self._lock)

    def _take_free_port(self) -> Optional[int]:
        for i in range(self.port_range):
            port = self.base_port + i
            if not self._ports[port]:
                self._ports[port] = True
                return port
        return None

    def acquire(self, timeout: Optional[float] = None) -> int:
        """
        Réserve le premier port libre.

        Args:
            timeout: attente maximale (secondes) si le pool est plein.
                None = échec immédiat.

        Raises:
            ExhaustedError: aucun port libre (signal transitoire, pas un crash)
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._freed:
            while True:
                port = self._take_free_port()
                if port is not None:
                    logger.debug("Port acquired", port=port, in_use=self._in_use_count())
                    return port

                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is None or remaining <= 0:
                    raise ExhaustedError(
                        f"No available ports in range {self.base_port}-{self.base_port + self.port_range - 1}"
                    )
                self._freed.wait(remaining)

    def release(self, port: int) -> None:
        """Libère un port; il est immédiatement réutilisable."""
        with self._freed:
            if port not in self._ports:
                raise ValueError(f"Port {port} does not belong to this pool")
            self._ports[port] = False
            self._freed.notify()
        logger.debug("Port released", port=port)

    @contextmanager
    def reserve(self, timeout: Optional[float] = None) -> Iterator[int]:
        """Acquisition scopée: le port est libéré sur tous les chemins de sortie."""
        port = self.acquire(timeout=timeout)
        try:
            yield port
        finally:
            self.release(port)

    def _in_use_count(self) -> int:
        return sum(1 for used in self._ports.values() if used)

    def in_use(self) -> List[int]:
        with self._lock:
            return [port for port, used in self._ports.items() if used]

    def available(self) -> int:
        with self._lock:
            return self.port_range - self._in_use_count()


_port_manager: Optional[PortManager] = None
_port_manager_lock = Lock()


def get_port_manager() -> PortManager:
    """Instance unique par process, initialisée à la première demande."""
    global _port_manager
    if _port_manager is None:
        with _port_manager_lock:
            if _port_manager is None:
                _port_manager = PortManager(config.PORT_POOL_BASE, config.PORT_POOL_SIZE)
                logger.info(
                    "Port pool initialized",
                    base_port=config.PORT_POOL_BASE,
                    port_range=config.PORT_POOL_SIZE,
                )
    return _port_manager
