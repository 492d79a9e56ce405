"""
Motion Gesture Trainer - Flask Backend

This is the Flask application providing a JSON API for a host UI or
device bridge:
- Live sample ingestion into the session buffer
- Action and recording management, dataset import / export
- Model options and training
- Live prediction (start / stop / poll)
- Simulated accelerometer stream and CSV replay
- Latency metrics

All endpoints return JSON responses.
"""
import logging
import math
import threading
import time

from flask import Flask, jsonify, request

from gesture_trainer.config import (
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    LOG_FORMAT,
    LOG_LEVEL,
    MAX_UPLOAD_SIZE_MB,
    STREAM_INTERVAL_MS,
)
from gesture_trainer.data_model import Recording
from gesture_trainer.errors import DatasetFormatError, EmptyInputError, UnknownActionError
from gesture_trainer.ml.model_store import ModelStore
from gesture_trainer.model_options import options_from_dict
from gesture_trainer.sample_sources import CSVSource, SimulatedSource
from gesture_trainer.session import Session

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE_MB * 1024 * 1024

# Global state
session = Session(model_store=ModelStore())
simulated_source = SimulatedSource()

_training_thread = None
_training_thread_lock = threading.Lock()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_id(raw: str):
    """Action IDs are usually integers, but imported datasets may use strings."""
    return int(raw) if raw.lstrip('-').isdigit() else raw


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError('Expected a JSON object body')
    return data


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.errorhandler(UnknownActionError)
def handle_unknown_action(e):
    return jsonify({'error': f'Unknown action {e.args[0] if e.args else ""}'}), 404


@app.errorhandler(DatasetFormatError)
@app.errorhandler(EmptyInputError)
@app.errorhandler(ValueError)
@app.errorhandler(IndexError)
def handle_bad_request(e):
    return jsonify({'error': str(e)}), 400


# =============================================================================
# ROUTES - STATUS AND SAMPLES
# =============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Get overall session status."""
    status = session.get_status()
    status['stream_active'] = simulated_source.is_active
    status['within_latency_target'] = session.latency_tracker.is_within_target()
    return jsonify(status)


@app.route('/api/samples', methods=['POST'])
def add_samples():
    """
    Add live samples to the buffer.

    Expected JSON: {"samples": [{"x": .., "y": .., "z": .., "timestamp": ..}]}
    or a single sample object. A missing timestamp means "now".
    """
    data = _json_body()
    samples = data.get('samples', [data])
    if not isinstance(samples, list):
        raise ValueError("'samples' must be a list")

    # Validate the whole batch before adding any sample
    parsed = []
    for raw in samples:
        try:
            values = {axis: float(raw[axis]) for axis in ('x', 'y', 'z')}
        except (KeyError, TypeError) as e:
            raise ValueError(f'Invalid sample: {raw!r}') from e
        if not all(math.isfinite(v) for v in values.values()):
            raise ValueError(f'Sample values must be finite: {raw!r}')
        parsed.append((values, int(raw.get('timestamp', _now_ms()))))

    for values, timestamp in parsed:
        session.buffer.add_sample(values, timestamp)

    return jsonify({'success': True, 'added': len(samples), 'buffered': len(session.buffer)})


# =============================================================================
# ROUTES - ACTIONS AND RECORDINGS
# =============================================================================

@app.route('/api/actions', methods=['GET'])
def list_actions():
    return jsonify(session.action_store.export_dataset())


@app.route('/api/actions', methods=['POST'])
def add_action():
    """Expected JSON (optional): {"name": "...", "icon": "..."}"""
    data = request.get_json(silent=True) or {}
    action = session.action_store.add_action(name=data.get('name', ''), icon=data.get('icon'))
    return jsonify(action.to_dict()), 201


@app.route('/api/actions/<action_id>', methods=['PATCH'])
def update_action(action_id):
    """
    Update an action.

    Expected JSON: any of {"name", "icon", "requiredConfidence"}
    """
    action_id = _parse_id(action_id)
    data = _json_body()
    store = session.action_store
    store.get_action(action_id)
    if 'name' in data:
        store.set_action_name(action_id, str(data['name']))
    if 'icon' in data:
        store.set_action_icon(action_id, str(data['icon']))
    if 'requiredConfidence' in data:
        store.set_required_confidence(action_id, float(data['requiredConfidence']))
    return jsonify(store.get_action(action_id).to_dict())


@app.route('/api/actions/<action_id>', methods=['DELETE'])
def delete_action(action_id):
    action_id = _parse_id(action_id)
    session.action_store.delete_action(action_id)
    return jsonify({'success': True})


@app.route('/api/actions/<action_id>/recordings', methods=['POST'])
def add_recording(action_id):
    """
    Add recordings to an action.

    Expected JSON: {"recordings": [{"x": [...], "y": [...], "z": [...]}]}
    or {"from_buffer": true} to record the last data window of the live
    buffer.
    """
    action_id = _parse_id(action_id)
    data = _json_body()
    store = session.action_store

    if data.get('from_buffer'):
        window = store.data_window
        recording = session.buffer.get_recording(_now_ms() - window.duration)
        if len(recording) == 0:
            return jsonify({'error': 'No samples in the buffer window'}), 400
        recordings = [recording]
    else:
        raw = data.get('recordings')
        if not isinstance(raw, list) or not raw:
            raise ValueError("'recordings' must be a non-empty list")
        recordings = [Recording.from_dict(r) for r in raw]

    action = store.add_recordings(action_id, recordings)
    return jsonify(action.to_dict()), 201


@app.route('/api/actions/<action_id>/recordings/<int:index>', methods=['DELETE'])
def delete_recording(action_id, index):
    action_id = _parse_id(action_id)
    action = session.action_store.delete_recording(action_id, index)
    return jsonify(action.to_dict())


# =============================================================================
# ROUTES - DATASET
# =============================================================================

@app.route('/api/dataset', methods=['GET'])
def export_dataset():
    return jsonify(session.action_store.export_dataset())


@app.route('/api/dataset', methods=['POST'])
def import_dataset():
    """Replace all actions. Expected JSON: a list of actions."""
    data = request.get_json(silent=True)
    if data is None:
        raise DatasetFormatError('Expected a JSON dataset')
    session.action_store.load_dataset(data)
    return jsonify({
        'success': True,
        'num_actions': len(session.action_store.actions),
        'num_recordings': session.action_store.total_recordings(),
    })


@app.route('/api/session/new', methods=['POST'])
def new_session():
    simulated_source.stop_stream()
    session.new_session()
    return jsonify({'success': True})


# =============================================================================
# ROUTES - MODEL OPTIONS, TRAINING AND PERSISTENCE
# =============================================================================

@app.route('/api/model_options', methods=['GET'])
def get_model_options():
    return jsonify(session.model_options.to_dict())


@app.route('/api/model_options', methods=['PUT'])
def set_model_options():
    """Update options. Expected JSON: camelCase option fields to change."""
    options = options_from_dict(_json_body(), base=session.model_options)
    session.set_model_options(options)
    return jsonify(options.to_dict())


@app.route('/api/train', methods=['POST'])
def train():
    """
    Train a model on the current actions.

    Expected JSON (optional): {"background": true} to return immediately;
    progress is then reported by /api/status.
    """
    global _training_thread

    data = request.get_json(silent=True) or {}
    if data.get('background'):
        with _training_thread_lock:
            if _training_thread is not None and _training_thread.is_alive():
                return jsonify({'error': 'Training already in progress'}), 409
            _training_thread = threading.Thread(target=session.train_model,
                                                name='training', daemon=True)
            _training_thread.start()
        return jsonify({'success': True, 'message': 'Training started'}), 202

    success = session.train_model()
    return jsonify({
        'success': success,
        'stage': session.training_stage.value,
        'tests_passed': {str(a.id): a.tests_passed for a in session.action_store.actions},
    }), 200 if success else 422


@app.route('/api/model/save', methods=['POST'])
def save_model():
    path = session.save_model()
    if path is None:
        return jsonify({'error': 'No trained model'}), 400
    return jsonify({'success': True, 'path': path})


@app.route('/api/model/load', methods=['POST'])
def load_model():
    if not session.load_model():
        return jsonify({'error': 'No stored model matching the current actions'}), 404
    return jsonify({'success': True})


# =============================================================================
# ROUTES - LIVE PREDICTION
# =============================================================================

@app.route('/api/predict/start', methods=['POST'])
def start_predicting():
    if not session.has_model:
        return jsonify({'error': 'No trained model'}), 400
    started = session.start_predicting()
    return jsonify({'success': True, 'already_running': not started})


@app.route('/api/predict/stop', methods=['POST'])
def stop_predicting():
    session.stop_predicting()
    return jsonify({'success': True})


@app.route('/api/prediction', methods=['GET'])
def get_prediction():
    prediction = session.prediction
    return jsonify({
        'is_predicting': session.is_predicting,
        'prediction': prediction.to_dict() if prediction is not None else None,
    })


# =============================================================================
# ROUTES - SIMULATED STREAM AND CSV REPLAY
# =============================================================================

@app.route('/api/stream/start', methods=['POST'])
def start_stream():
    """Start the simulated accelerometer stream into the buffer."""
    if not simulated_source.stream_to(session.buffer):
        return jsonify({'message': 'Stream already active'}), 200
    return jsonify({
        'success': True,
        'message': 'Stream started',
        'interval_ms': STREAM_INTERVAL_MS,
    })


@app.route('/api/stream/stop', methods=['POST'])
def stop_stream():
    simulated_source.stop_stream()
    return jsonify({'success': True, 'message': 'Stream stopped'})


@app.route('/api/stream/gesture', methods=['POST'])
def set_stream_gesture():
    """
    Set the gesture to simulate.

    Expected JSON: {"gesture": "still|shake|circle|tap"}
    """
    gesture = _json_body().get('gesture', 'still')
    if not simulated_source.set_gesture(gesture):
        return jsonify({'error': 'Invalid gesture'}), 400
    return jsonify({'success': True, 'gesture': gesture})


@app.route('/api/upload', methods=['POST'])
def upload_csv():
    """
    Upload a timestamp,x,y,z CSV file.

    With an "action_id" form field the whole file is added to that action
    as one recording; otherwise it is replayed into the live buffer, ending
    at the current time.
    """
    if 'file' not in request.files:
        return jsonify({'error': 'No file provided'}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({'error': 'No file selected'}), 400
    if not file.filename.endswith('.csv'):
        return jsonify({'error': 'File must be a CSV'}), 400

    csv_source = CSVSource()
    if not csv_source.load_from_file(file.read()):
        return jsonify({'error': 'Failed to parse CSV file'}), 400

    action_id = request.form.get('action_id')
    if action_id is not None:
        action = session.action_store.add_recordings(_parse_id(action_id), [csv_source.get_recording()])
        return jsonify(action.to_dict()), 201

    csv_source.rebase(_now_ms())
    added = csv_source.feed(session.buffer)
    return jsonify({'success': True, 'added': added, 'buffered': len(session.buffer)})


# =============================================================================
# ROUTES - METRICS
# =============================================================================

@app.route('/api/metrics', methods=['GET'])
def get_metrics():
    """Get live prediction latency metrics."""
    tracker = session.latency_tracker
    return jsonify({
        'latency': tracker.get_current_stats(),
        'breakdown': tracker.get_breakdown_stats(),
        'latest': tracker.get_latest(),
    })


# =============================================================================
# MAIN
# =============================================================================

if __name__ == '__main__':
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    logger.info("Starting server at http://%s:%s", FLASK_HOST, FLASK_PORT)
    app.run(
        host=FLASK_HOST,
        port=FLASK_PORT,
        debug=FLASK_DEBUG,
        threaded=True,
    )
