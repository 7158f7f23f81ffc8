# overseer-stage/app.py
# Flask + Flask-SocketIO server for a live scripted experience (admin + participants)
# - index-based scene timeline (duplicate names allowed)
# - per-scene ballots, simple or split by participant group
# - monotonic authoritative round timer, broadcast every 250ms
# - read-only JSON reporting for connection counts and current leaders

from __future__ import annotations
import logging
import secrets
from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from ballots import VoteStore
from connections import ConnectionRegistry
from controller import StageController
from round_timer import TICK_SECONDS, RoundTimer
from scenes import default_timeline, load_timeline, validate_timeline
from settings import Settings, load_settings

logger = logging.getLogger("overseer_stage")

# ================== Config ==================
SETTINGS = load_settings()

# Socket.IO tuning (mobile-friendly)
SOCKET_KW = dict(
    cors_allowed_origins="*",
    async_mode="threading",
    ping_interval=20,
    ping_timeout=30,
    max_http_buffer_size=1_000_000
)


def setup_logging(level: str = "INFO"):
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers[:] = [handler]


# ================== App init ==================
app = Flask(__name__, static_url_path="/static", static_folder="static")
app.wsgi_app = ProxyFix(app.wsgi_app)
app.config["SECRET_KEY"] = secrets.token_hex(16)
socketio = SocketIO(app, **SOCKET_KW)


class SocketIOTransport:
    def emit(self, event: str, payload: dict, to: str):
        socketio.emit(event, payload, room=to)


def create_stage(settings: Settings, transport) -> StageController:
    if settings.timeline_file is not None:
        registry, ballots = load_timeline(settings.timeline_file)
    else:
        registry, ballots = default_timeline()
    validate_timeline(registry, ballots)
    return StageController(
        registry=registry,
        votes=VoteStore(ballots),
        timer=RoundTimer(default_ms=settings.default_round_seconds * 1000),
        connections=ConnectionRegistry(
            group_count=settings.group_count,
            group_capacity=settings.group_capacity,
        ),
        transport=transport,
        admin_secret=settings.admin_secret,
        initial_index=registry.initial_index(settings.initial_scene),
    )


stage = create_stage(SETTINGS, SocketIOTransport())

# ================== Routes ==================
@app.route("/favicon.ico")
def favicon():
    return ("", 204)

@app.route("/clients")
def clients():
    return jsonify(stage.clients_report())

@app.route("/winner")
def winner():
    return jsonify(stage.winner_report())

@app.route("/scenes")
def scenes():
    return jsonify(stage.scenes_report())

# ================== Socket.IO: connection lifecycle ==================
@socketio.on("connect")
def on_connect(auth=None):
    stage.connect(request.sid)

@socketio.on("disconnect")
def on_disconnect(*args):
    stage.disconnect(request.sid)

# ================== Socket.IO: participant ==================
@socketio.on("identify")
def identify(data=None):
    stage.dispatch(request.sid, "identify", data)

@socketio.on("setDisplayName")
def set_display_name(data=None):
    stage.dispatch(request.sid, "setDisplayName", data)

@socketio.on("chooseGroup")
def choose_group(data=None):
    stage.dispatch(request.sid, "chooseGroup", data)

@socketio.on("join")
def join(data=None):
    stage.dispatch(request.sid, "join", data)

@socketio.on("submitVote")
def submit_vote(data=None):
    stage.dispatch(request.sid, "submitVote", data)

# ================== Socket.IO: admin ==================
@socketio.on("advanceScene")
def advance_scene(data=None):
    stage.dispatch(request.sid, "advanceScene", data)

@socketio.on("setSceneByIndex")
def set_scene_by_index(data=None):
    stage.dispatch(request.sid, "setSceneByIndex", data)

@socketio.on("setSceneByName")
def set_scene_by_name(data=None):
    stage.dispatch(request.sid, "setSceneByName", data)

@socketio.on("resetCurrentBallot")
def reset_current_ballot(data=None):
    stage.dispatch(request.sid, "resetCurrentBallot", data)

@socketio.on("startTimer")
def start_timer(data=None):
    stage.dispatch(request.sid, "startTimer", data)

@socketio.on("stopTimer")
def stop_timer(data=None):
    stage.dispatch(request.sid, "stopTimer", data)

@socketio.on("forceClientReload")
def force_client_reload(data=None):
    stage.dispatch(request.sid, "forceClientReload", data)

# ================== Background / Timer loop ==================
def timer_loop():
    while True:
        try:
            stage.tick()
        except Exception:
            # keep the loop alive; the next tick recomputes from the deadline
            logger.exception("timer tick failed")
        socketio.sleep(TICK_SECONDS)


def main():
    setup_logging(SETTINGS.log_level)
    socketio.start_background_task(timer_loop)
    pos = stage.current
    logger.info("listening on %s:%d | initial: %s index: %d",
                SETTINGS.host, SETTINGS.port, pos.name, pos.index)
    socketio.run(app, host=SETTINGS.host, port=SETTINGS.port, debug=False,
                 allow_unsafe_werkzeug=True)


if __name__ == "__main__":
    main()
