"""
Headless BPMN to CACAO conversion server.
Used by modeler plugins to convert diagrams over HTTP.
"""
import os
import sys

# Ensure we can find modules relative to this script
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app import app
from waitress import serve

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 8000


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    port = int(argv[0]) if argv else DEFAULT_PORT
    host = os.environ.get('CACAO_SERVER_HOST', DEFAULT_HOST)
    print(f'BPMN to CACAO server starting on http://{host}:{port}')
    serve(app, host=host, port=port, _quiet=True)


if __name__ == '__main__':
    main()
