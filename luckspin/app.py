import base64
import logging
import os
import secrets
import socket
import threading
from datetime import datetime
from io import BytesIO

import qrcode
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_socketio import SocketIO
from werkzeug.utils import secure_filename

from luckspin import config as config_store
from luckspin import generator, importer, selector, state
from luckspin.animator import SpinAnimator, sector_geometry
from luckspin.errors import (AlreadyPlayed, CollaboratorError, GeneratorError, ImportParseError,
                             InvalidConfiguration, NotLoggedIn, ParticipantNotFound)
from luckspin.models import Tier, sectors_from_dicts, top_prizes

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s',
    handlers=[
        logging.FileHandler(os.environ.get('LUCKSPIN_LOG', 'luckspin.log')),
        logging.StreamHandler()
    ]
)

app = Flask(__name__)
app.config.update(
    SECRET_KEY=os.environ.get('SECRET_KEY', secrets.token_hex(32)),
    MAX_CONTENT_LENGTH=16 * 1024 * 1024  # 16MB max upload
)

socketio = SocketIO(app, cors_allowed_origins="*", ping_timeout=60, ping_interval=25)

config_path = config_store.CONFIG_FILE
current_config = config_store.clean_config({})
connected_clients = set()
clients_lock = threading.Lock()


def socketio_scheduler(delay, callback):
    """Run the spin completion as a Socket.IO background task"""
    def run():
        socketio.sleep(delay)
        callback()
    return socketio.start_background_task(run)


def build_animator(config):
    return SpinAnimator(
        pointer_angle=config['pointer_angle'],
        extra_turns=config['extra_turns'],
        jitter_fraction=config['jitter_fraction'],
        duration=config['spin_duration_seconds'],
        scheduler=socketio_scheduler,
    )


def build_session(config, sectors=None):
    app_state = state.AppState()
    if sectors:
        app_state = state.replace_sectors(app_state, sectors)
    return state.GameSession(state=app_state, animator=build_animator(config))


game = build_session(current_config)


def error_response(error, message, status):
    return jsonify({'success': False, 'error': error, 'message': message,
                    'timestamp': datetime.now().isoformat()}), status


def get_wheel_state():
    """Everything the display needs to draw the wheel"""
    sectors = list(game.state.sectors)
    warning = selector.weight_warning(sectors)
    return {
        'title': current_config.get('title'),
        'logo_url': current_config.get('logo_url'),
        'customer_service_url': current_config.get('customer_service_url'),
        'display_mode': current_config.get('wheel_display_mode'),
        'pointer_angle': game.animator.pointer_angle,
        'sectors': [s.to_dict() for s in sectors],
        'geometry': sector_geometry(len(sectors)),
        'top_prizes': [s.to_dict() for s in top_prizes(sectors)],
        'total_probability': selector.total_weight(sectors),
        'warning': str(warning) if warning else None,
        'status': game.status(),
    }


# ==============================================================================
# SPIN FLOW
# ==============================================================================

def reject_busy_spin(source):
    """Broadcast the one spin_rejected event for a request that hit a busy wheel"""
    logging.warning(f"🔄 Spin from '{source}' BLOCKED: wheel is busy")
    socketio.emit('spin_rejected', {
        'reason': 'wheel_busy',
        'message': 'Wheel is currently spinning. Please wait.',
        'source': source,
        'timestamp': datetime.now().isoformat()
    })
    return {'success': False, 'error': 'wheel_busy',
            'message': 'Wheel is currently spinning. Please wait for it to complete.'}, 409


def trigger_spin_flow(source='unknown', name=None):
    """
    Single entry point for every spin request. Returns (payload, status code).
    The winner is decided before the wheel is asked to move.
    """
    if game.animator.is_spinning or game.state.is_spinning:
        return reject_busy_spin(source)

    try:
        if name:
            game.dispatch(state.login, name)

        def complete_spin(winner):
            participant = state.last_drawer(game.state)
            logging.info(f"📡 Emitting spin_complete: winner={winner.name}")
            socketio.emit('spin_complete', {
                'winner': winner.to_dict(),
                'participant': participant.to_dict() if participant else None,
                'rotation': game.animator.rotation,
            })
            socketio.emit('state_update', get_wheel_state())

        winner, transition = game.draw(on_complete=complete_spin)
        if winner is None:
            return reject_busy_spin(source)

        spin_data = dict(transition.to_dict(), winner_id=winner.id, source=source,
                         spin_number=game.state.spins_started)
        logging.info(f"📡 Emitting spin_started: winner_id={winner.id}")
        socketio.emit('spin_started', spin_data)
        return dict(spin_data, success=True, message='Spin triggered successfully'), 200

    except ParticipantNotFound as e:
        logging.warning(f"🚫 Spin from '{source}' rejected: {e}")
        return {'success': False, 'error': 'not_found', 'message': str(e)}, 404
    except (AlreadyPlayed, NotLoggedIn) as e:
        logging.warning(f"🚫 Spin from '{source}' rejected: {e}")
        return {'success': False, 'error': 'not_eligible', 'message': str(e)}, 403
    except InvalidConfiguration as e:
        logging.error(f"⌘ Spin ABORTED: {e}")
        socketio.emit('spin_error', {'message': f'Cannot spin: {e}', 'error_type': 'invalid_configuration'})
        return {'success': False, 'error': 'invalid_configuration', 'message': str(e)}, 400


# ==============================================================================
# PLAYER ENDPOINTS
# ==============================================================================

@app.route('/api/wheel')
def wheel_data():
    return jsonify(get_wheel_state())


@app.route('/api/login', methods=['POST'])
def login():
    """Verify a visitor against the eligibility list"""
    data = request.get_json(silent=True) or {}
    try:
        game.dispatch(state.login, data.get('name', ''))
        participant = state.current_participant(game.state)
        logging.info(f"🔑 Participant logged in: {participant.name}")
        return jsonify({'success': True, 'participant': participant.to_dict()})
    except ParticipantNotFound as e:
        return error_response('not_found', str(e), 404)
    except AlreadyPlayed as e:
        return error_response('already_played', str(e), 403)


@app.route('/api/logout', methods=['POST'])
def logout():
    game.dispatch(state.logout)
    return jsonify({'success': True})


@app.route('/api/spin', methods=['POST'])
def trigger_spin_api():
    """Spin for the participant named in the body, or the one logged in"""
    data = request.get_json(silent=True) or {}
    source_info = data.get('source', 'rest_api')
    logging.info(f"📡 API spin request via {source_info}")
    payload, status = trigger_spin_flow(source=f'api_{source_info}', name=data.get('name'))
    payload['timestamp'] = datetime.now().isoformat()
    payload['wheel_status'] = game.status()
    return jsonify(payload), status


@app.route('/api/spin/status')
def get_spin_status():
    with clients_lock:
        clients = len(connected_clients)
    return jsonify(dict(game.status(), connected_clients=clients,
                        timestamp=datetime.now().isoformat()))


# ==============================================================================
# ADMIN ENDPOINTS
# ==============================================================================

@app.before_request
def check_admin_whitelist():
    if not request.path.startswith('/api/admin'):
        return None
    whitelist = current_config.get('ip_whitelist') or []
    if whitelist and request.remote_addr not in whitelist:
        logging.warning(f"🛡️ Admin access denied for {request.remote_addr}")
        return error_response('forbidden', 'Admin access is restricted', 403)
    return None


@app.route('/api/admin/sectors', methods=['GET'])
def get_sectors():
    sectors = list(game.state.sectors)
    warning = selector.weight_warning(sectors)
    return jsonify({'sectors': [s.to_dict() for s in sectors],
                    'total_probability': selector.total_weight(sectors),
                    'warning': str(warning) if warning else None})


@app.route('/api/admin/sectors', methods=['PUT'])
def update_sectors():
    """Replace the whole sector list; order defines position on the wheel"""
    data = request.get_json(silent=True) or {}
    try:
        sectors = sectors_from_dicts(data.get('sectors'))
        game.dispatch(state.replace_sectors, sectors)
    except InvalidConfiguration as e:
        return error_response('invalid_configuration', str(e), 400)

    current_config['sectors'] = [s.to_dict() for s in sectors]
    if not config_store.save_config(current_config, config_path):
        return error_response('save_failed', 'Failed to save configuration', 500)

    warning = selector.weight_warning(sectors)
    if warning:
        logging.warning(f"⚠️ {warning}")
    logging.info(f"🎁 Sector list updated: {len(sectors)} sectors")
    return jsonify({'success': True, 'sectors': [s.to_dict() for s in sectors],
                    'warning': str(warning) if warning else None})


@app.route('/api/admin/sectors/generate', methods=['POST'])
def generate_sectors():
    """Ask the AI configurator for a candidate list; nothing goes live here"""
    data = request.get_json(silent=True) or {}
    try:
        sectors = generator.generate_sectors(data.get('prompt', ''))
    except GeneratorError as e:
        return error_response('generator_failed',
                              f"Failed to generate prizes. Please check API Key and try again. ({e})", 502)
    warning = selector.weight_warning(sectors)
    return jsonify({'success': True, 'sectors': [s.to_dict() for s in sectors],
                    'warning': str(warning) if warning else None})


@app.route('/api/admin/participants', methods=['GET'])
def list_participants():
    participants = game.state.participants
    return jsonify({'participants': [p.to_dict() for p in participants],
                    'count': len(participants),
                    'played': sum(1 for p in participants if p.has_played)})


@app.route('/api/admin/participants/import', methods=['POST'])
def import_participants():
    """Paste names, one per line"""
    data = request.get_json(silent=True) or {}
    names = importer.parse_names(data.get('text', ''))
    tier = data.get('tier', Tier.STANDARD.value)
    try:
        game.dispatch(state.add_participants, names, Tier(tier))
    except ValueError:
        return error_response('invalid_tier', f"Unknown tier: {tier}", 400)
    logging.info(f"👥 Imported {len(names)} participants from text")
    return jsonify({'success': True, 'imported': len(names),
                    'message': f"Successfully imported {len(names)} users."})


@app.route('/api/admin/participants/upload', methods=['POST'])
def upload_participants():
    """Spreadsheet import, column A of the first sheet"""
    if 'file' not in request.files:
        return error_response('no_file', 'No file provided', 400)

    file = request.files['file']
    if file.filename == '':
        return error_response('no_file', 'No file selected', 400)

    filename = secure_filename(file.filename)
    if not importer.allowed_file(filename):
        allowed = ', '.join(sorted(importer.ALLOWED_SPREADSHEET_EXTENSIONS))
        return error_response('invalid_file', f'Invalid file type. Allowed: {allowed}', 400)

    try:
        names = importer.parse_spreadsheet(BytesIO(file.read()), filename)
    except ImportParseError as e:
        return error_response('import_failed', str(e), 400)

    game.dispatch(state.add_participants, names)
    logging.info(f"📊 Imported {len(names)} participants from {filename}")
    return jsonify({'success': True, 'imported': len(names),
                    'message': f"Successfully imported {len(names)} users from Excel."})


@app.route('/api/admin/participants/<participant_id>', methods=['DELETE'])
def delete_participant(participant_id):
    try:
        game.dispatch(state.remove_participant, participant_id)
    except ParticipantNotFound as e:
        return error_response('not_found', str(e), 404)
    logging.info(f"🗑️ Participant removed: {participant_id}")
    return jsonify({'success': True, 'message': 'Participant deleted successfully'})


@app.route('/api/admin/participants/<participant_id>/tier', methods=['PUT'])
def update_participant_tier(participant_id):
    data = request.get_json(silent=True) or {}
    try:
        game.dispatch(state.set_tier, participant_id, data.get('tier'))
    except ParticipantNotFound as e:
        return error_response('not_found', str(e), 404)
    except ValueError:
        return error_response('invalid_tier', f"Unknown tier: {data.get('tier')}", 400)
    logging.info(f"🎚️ Participant {participant_id} tier set to {data.get('tier')}")
    return jsonify({'success': True})


@app.route('/api/admin/config', methods=['POST'])
def save_config():
    """Save display and timing settings; geometry changes apply from the next spin"""
    global current_config
    data = request.get_json(silent=True) or {}
    if game.animator.is_spinning:
        return error_response('wheel_busy', 'Cannot change settings while the wheel is spinning', 409)
    try:
        updated = config_store.clean_config(data, base=current_config)
    except (TypeError, ValueError) as e:
        return error_response('invalid_config', str(e), 400)

    animator = game.animator
    try:
        animator.configure(updated['pointer_angle'], updated['extra_turns'],
                           updated['jitter_fraction'], updated['spin_duration_seconds'])
    except ValueError as e:
        return error_response('invalid_config', str(e), 400)
    except InvalidConfiguration as e:
        return error_response('wheel_busy', str(e), 409)

    if not config_store.save_config(updated, config_path):
        return error_response('save_failed', 'Failed to save configuration', 500)

    current_config = updated
    logging.info(f"⚙️ Configuration updated: duration={animator.duration}s, turns={animator.extra_turns}")
    return jsonify({'success': True, 'config': updated})


# ==============================================================================
# ODDS
# ==============================================================================

@app.route('/api/odds/analysis')
def get_odds_analysis():
    """Probability of each sector given the current weights"""
    sectors = list(game.state.sectors)
    total = selector.total_weight(sectors)
    analysis = []
    for index, sector in enumerate(sectors):
        analysis.append({
            'index': index,
            'id': sector.id,
            'name': sector.name,
            'type': sector.kind.value,
            'weight': sector.weight,
            'probability': (sector.weight / total) * 100 if total > 0 else 0,
        })
    ranked = sorted(analysis, key=lambda a: a['probability'], reverse=True)
    return jsonify({
        'total_weight': total,
        'sectors': analysis,
        'most_likely': ranked[0] if ranked else None,
        'least_likely': ranked[-1] if ranked else None,
        'rigged_outcome': analysis[selector.rigged_index(sectors)] if sectors else None,
    })


@app.route('/api/odds/simulate', methods=['POST'])
def simulate_spins():
    """Simulate many draws to check the distribution"""
    data = request.get_json(silent=True) or {}
    try:
        num_simulations = max(1, min(int(data.get('simulations', 1000)), 10000))
    except (TypeError, ValueError):
        return error_response('invalid_request', 'simulations must be a number', 400)

    sectors = list(game.state.sectors)
    counts = [0] * len(sectors)
    try:
        for _ in range(num_simulations):
            counts[selector.select(sectors)] += 1
    except InvalidConfiguration as e:
        return error_response('invalid_configuration', str(e), 400)

    total = selector.total_weight(sectors)
    results = [{
        'id': sector.id,
        'name': sector.name,
        'expected_percentage': (sector.weight / total) * 100 if total > 0 else 0,
        'actual_percentage': (counts[i] / num_simulations) * 100,
        'count': counts[i],
    } for i, sector in enumerate(sectors)]
    return jsonify({'simulations': num_simulations, 'results': results})


# QR Code generation for easy mobile access
@app.route('/api/qr_code')
def generate_qr_code():
    """QR code pointing visitors at this server"""
    host = request.host
    if host.startswith('127.0.0.1') or host.startswith('localhost'):
        port = host.rsplit(':', 1)[1] if ':' in host else '5000'
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(('8.8.8.8', 80))
            host = f"{s.getsockname()[0]}:{port}"
        except OSError:
            logging.debug("🔍 Could not resolve LAN address, using request host")
        finally:
            s.close()

    url = f"http://{host}/"
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format='PNG')
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return jsonify({'qr_code': f"data:image/png;base64,{img_str}", 'url': url})


# ==============================================================================
# SOCKET.IO EVENT HANDLERS
# ==============================================================================

@socketio.on('connect')
def handle_connect():
    with clients_lock:
        connected_clients.add(request.sid)
        total = len(connected_clients)
    logging.info(f"🔌 Client connected: {request.sid} (Total: {total})")
    socketio.emit('state_update', get_wheel_state(), to=request.sid)


@socketio.on('disconnect')
def handle_disconnect(*args):
    with clients_lock:
        connected_clients.discard(request.sid)
        remaining = len(connected_clients)
    logging.info(f"🔌 Client disconnected: {request.sid} (Remaining: {remaining})")


@socketio.on('trigger_spin_from_web')
def handle_web_spin_request(data=None):
    name = data.get('name') if data else None
    logging.info(f"🌐 Web spin request from client {request.sid}: {name or 'logged-in participant'}")
    payload, status = trigger_spin_flow(source='web_interface', name=name)
    # busy rejections were already broadcast by the spin flow
    if status != 200 and payload.get('error') != 'wheel_busy':
        socketio.emit('spin_rejected', dict(payload, source='web_interface'), to=request.sid)


@socketio.on('request_state_update')
def handle_state_request():
    socketio.emit('state_update', get_wheel_state(), to=request.sid)


# ==============================================================================
# ERROR HANDLERS
# ==============================================================================

@app.errorhandler(CollaboratorError)
def collaborator_error(error):
    logging.warning(f"⚠️ Collaborator failure: {error}")
    return error_response('collaborator_error', str(error), 502)


@app.errorhandler(500)
def internal_error(error):
    logging.error(f"💥 Internal server error: {error}")
    return jsonify({'error': 'Internal server error', 'message': str(error)}), 500


@app.errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Not found', 'message': 'Endpoint not found'}), 404


@app.errorhandler(413)
def file_too_large(error):
    return jsonify({'error': 'File too large', 'message': 'File exceeds 16MB limit'}), 413


@app.errorhandler(400)
def bad_request(error):
    return jsonify({'error': 'Bad request', 'message': str(error)}), 400


# ==============================================================================
# STARTUP
# ==============================================================================

def initialize(path=None):
    """Load config.json (creating it on first run) and rebuild the session"""
    global current_config, game, config_path
    config_path = path or config_path
    current_config = config_store.load_config(config_path)
    try:
        sectors = sectors_from_dicts(current_config['sectors'])
    except InvalidConfiguration as e:
        logging.error(f"💥 Stored sectors are invalid ({e}), using defaults")
        sectors = None
    game = build_session(current_config, sectors)
    logging.info(f"🔒 Configuration initialized: {len(game.state.sectors)} sectors, "
                 f"{len(game.state.participants)} participants")
    return game


def main():
    initialize()
    port = int(os.environ.get('PORT', 5000))
    logging.info("🎪 LUCKSPIN PRO 🎪")
    logging.info("=" * 60)
    logging.info(f"🌍 Wheel:        http://0.0.0.0:{port}/api/wheel")
    logging.info(f"🎲 Spin:         http://0.0.0.0:{port}/api/spin")
    logging.info(f"📡 Spin Status:  http://0.0.0.0:{port}/api/spin/status")
    logging.info(f"📱 QR Code API:  http://0.0.0.0:{port}/api/qr_code")
    logging.info("=" * 60)
    try:
        socketio.run(app, host='0.0.0.0', port=port, debug=False, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        logging.info("🛑 Server shutdown requested")


if __name__ == '__main__':
    main()
