"""Camera permission gate."""
import asyncio

import structlog

from .camera.base import AuthorizationState, CameraDevice

logger = structlog.get_logger()


class PermissionGate:
    """Resolves camera authorization into a terminal state.

    The platform prompt is issued at most once per gate; the resolved
    state is cached for the lifetime of the gate.
    """

    def __init__(self, camera: CameraDevice):
        self.camera = camera
        self._state: AuthorizationState | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> AuthorizationState | None:
        """Resolved state, or None before the first resolve()."""
        return self._state

    async def resolve(self) -> AuthorizationState:
        """Return the authorization state, prompting only if undetermined."""
        if self._state is not None:
            return self._state

        async with self._lock:
            if self._state is not None:
                return self._state

            status = self.camera.authorization_status()
            if status == AuthorizationState.NOT_DETERMINED:
                granted = await self.camera.request_authorization()
                status = AuthorizationState.AUTHORIZED if granted else AuthorizationState.DENIED
                logger.info("camera_permission_prompted", granted=granted)

            self._state = status

        if status != AuthorizationState.AUTHORIZED:
            logger.warning("camera_permission_refused", state=status.value)
        return status

    @staticmethod
    def proceeds(state: AuthorizationState) -> bool:
        """Only an authorized camera lets the session start."""
        return state == AuthorizationState.AUTHORIZED
