from typing import Callable


def schedule_computer_move(app, socketio, play: Callable[[str, str], None], room_key: str, expected_turn: str) -> None:
    """Run ``play(room_key, expected_turn)`` after the configured delay.

    - Bound to the room key, not the room object; ``play`` re-fetches the room
    - Not cancellable; a room dropped before firing makes ``play`` a no-op
    - Runs inline without delay in TESTING mode
    """
    delay = float(app.config.get('AI_MOVE_DELAY_SEC', 1.0))

    def _worker(key: str, turn: str, wait: float):
        if wait > 0:
            socketio.sleep(wait)
        with app.app_context():
            app.logger.info(f"[computer-fire] room={key} expected_turn={turn}")
            try:
                play(key, turn)
            except Exception:
                app.logger.exception(f"[computer-fail] room={key}")

    app.logger.info(f"[computer-set] room={room_key} expected_turn={expected_turn} delay={delay}s")
    if app.config.get('TESTING'):
        _worker(room_key, expected_turn, 0)
    else:
        socketio.start_background_task(_worker, room_key, expected_turn, delay)
