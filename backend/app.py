import logging
import os

from flask import Flask, jsonify, make_response, request

from bpmn_parser import read_bpmn
from cacao_converter import convert_to_cacao
from cacao_models import CACAO_SPEC_VERSION_11, SUPPORTED_SPEC_VERSIONS, playbook_to_dict, playbook_to_json
from conversion_errors import BpmnToCacaoError

logger = logging.getLogger(__name__)


# --- App Data Directory (debug log lives here, not next to the code) ---
def get_app_data_dir():
    override = os.environ.get('BPMN_TO_CACAO_DATA_DIR')
    if override:
        app_dir = override
    elif os.name == 'nt':  # Windows
        app_dir = os.path.join(os.environ.get('LOCALAPPDATA', os.path.expanduser('~')), 'BPMN_to_CACAO')
    else:  # Linux/Mac
        app_dir = os.path.join(os.path.expanduser('~'), '.config', 'BPMN_to_CACAO')
    os.makedirs(app_dir, exist_ok=True)
    return app_dir


def configure_debug_log(app_dir):
    """Send converter and service logs to <app data dir>/debug.log"""
    log_path = os.path.join(app_dir, 'debug.log')
    handler = logging.FileHandler(log_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > logging.INFO:
        root.setLevel(logging.INFO)
    return log_path


APP_DATA_DIR = get_app_data_dir()
DEBUG_LOG_PATH = configure_debug_log(APP_DATA_DIR)

# --- Flask App Initialization ---
app = Flask(__name__)
app.config['CACAO_SPEC_VERSION'] = os.environ.get('CACAO_SPEC_VERSION', CACAO_SPEC_VERSION_11)

logger.info("=== App starting ===")
logger.info("debug log: %s", DEBUG_LOG_PATH)


def _cors(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    return response


def _preflight():
    response = make_response()
    response.headers['Access-Control-Allow-Methods'] = 'POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return _cors(response)


def _error(message, status):
    return _cors(jsonify({'error': message})), status


def _spec_version(requested):
    """Requested spec version, or the app default; None if it is not supported"""
    if requested is not None and not isinstance(requested, str):
        return None
    spec_version = (requested or '').strip() or app.config['CACAO_SPEC_VERSION']
    if spec_version not in SUPPORTED_SPEC_VERSIONS:
        return None
    return spec_version


def convert_bpmn(bpmn_content: bytes, spec_version: str):
    """Parse and convert in one go; BpmnToCacaoError propagates to the caller"""
    return convert_to_cacao(read_bpmn(bpmn_content), spec_version)


@app.route('/api/spec-versions', methods=['GET'])
def spec_versions():
    """Supported CACAO spec versions and the default used when none is given"""
    return _cors(jsonify({
        'versions': list(SUPPORTED_SPEC_VERSIONS),
        'default': app.config['CACAO_SPEC_VERSION'],
    }))


@app.route('/api/convert', methods=['POST', 'OPTIONS'])
def api_convert():
    """API endpoint for modeler plugins - accepts XML as JSON, returns the CACAO playbook"""
    if request.method == 'OPTIONS':
        return _preflight()

    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get('xml'), str) or not data['xml']:
        return _error('No XML provided', 400)

    spec_version = _spec_version(data.get('spec_version'))
    if spec_version is None:
        return _error(f"Unsupported CACAO spec version: {data.get('spec_version')}", 400)

    try:
        playbook = convert_bpmn(data['xml'].encode('utf-8'), spec_version)
    except BpmnToCacaoError as e:
        logger.error("conversion failed: %s", e)
        return _error(str(e), 422)

    logger.info("converted process %r to %s (CACAO %s)", playbook.name, playbook.id, spec_version)
    return _cors(jsonify(playbook_to_dict(playbook)))


@app.route('/convert', methods=['POST'])
def convert_upload():
    """Convert an uploaded BPMN file (or pasted XML) and return it as a .cacao.json download"""
    bpmn_content = None
    output_name = None

    # Check for file upload first
    if 'bpmn_file' in request.files:
        file = request.files['bpmn_file']
        if file.filename != '':
            bpmn_content = file.read()
            output_name = os.path.basename(file.filename)

    # Fall back to raw XML text
    if not bpmn_content:
        xml_code = request.form.get('xml_code', '').strip()
        if xml_code:
            bpmn_content = xml_code.encode('utf-8')

    if not bpmn_content:
        return _error('No BPMN content provided', 400)

    spec_version = _spec_version(request.form.get('spec_version'))
    if spec_version is None:
        return _error(f"Unsupported CACAO spec version: {request.form.get('spec_version')}", 400)

    try:
        playbook = convert_bpmn(bpmn_content, spec_version)
    except BpmnToCacaoError as e:
        logger.error("conversion of %s failed: %s", output_name or 'pasted XML', e)
        return _error(str(e), 422)

    if not output_name:
        output_name = playbook.name or 'playbook'
    response = make_response(playbook_to_json(playbook))
    response.headers['Content-Type'] = 'application/json'
    response.headers['Content-Disposition'] = f'attachment; filename="{output_name}.cacao.json"'
    return _cors(response)
