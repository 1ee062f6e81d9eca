from barsays import socketio
from . import rooms
from .session import CLOCK_TIMER, ClockRequest
from .settings import GameSettings

NAMESPACE = '/ws'


def publish(event: str, payload: dict, to: str) -> None:
    """Emit one room message on the game namespace (room channel or a single sid)."""
    socketio.emit(event, payload, to=to, namespace=NAMESPACE)


def schedule_clock(app, code: str, request: ClockRequest) -> None:
    """Deliver ``request`` back to the room after its delay.

    - No-ops in TESTING mode (tests drive the clock directly)
    - One background task per request; chained requests re-schedule themselves
    - The room rejects requests from an older epoch, so a late task is harmless
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    if request.kind != CLOCK_TIMER or app.config.get('TIMER_HEARTBEAT_LOG'):
        app.logger.info(
            f"[timer-set] room={code} kind={request.kind} epoch={request.epoch} delay={request.delay}s"
        )

    def _worker(room_code: str, req: ClockRequest):
        socketio.sleep(req.delay)
        with app.app_context():
            try:
                rooms.clock(room_code, req)
            except Exception:
                app.logger.exception(f"[timer-fail] room={room_code} kind={req.kind} epoch={req.epoch}")

    socketio.start_background_task(_worker, code, request)


def init_rooms(app) -> None:
    """Wire the room manager to Socket.IO and the app's game policy."""
    rooms.configure(
        settings=GameSettings.from_config(app.config),
        publish=publish,
        schedule=lambda code, request: schedule_clock(app, code, request),
        immediate_teardown=bool(app.config.get('TESTING')),
        empty_grace_sec=float(app.config.get('ROOM_EMPTY_GRACE_SEC', 30)),
    )
