"""HTTP server exposing liveness and readiness of the pipeline."""

import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

DEFAULT_SERVER_HOST = "0.0.0.0"
LIVE_PATH = "/live"
READY_PATH = "/ready"
CHECK_NAME = "PipelineCheck"
RETRY_INTERVAL = 60.0


def _join_host_port(host, port):
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _run_checks(checks):
    results = {}
    healthy = True
    for name, check in checks.items():
        try:
            check()
        except Exception as err:  # a failing check reports any error
            results[name] = str(err)
            healthy = False
        else:
            results[name] = "OK"
    return healthy, results


def _make_handler(server):
    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            self._respond(with_body=True)

        def do_HEAD(self):
            self._respond(with_body=False)

        def _respond(self, with_body):
            url = urlsplit(self.path)
            if url.path == LIVE_PATH:
                checks = dict(server.liveness_checks)
            elif url.path == READY_PATH:
                checks = {**server.liveness_checks, **server.readiness_checks}
            else:
                self.send_error(404)
                return
            healthy, results = _run_checks(checks)
            full = "full" in parse_qs(url.query, keep_blank_values=True)
            body = (json.dumps(results, indent=4) + "\n" if full else "{}\n").encode("utf-8")
            self.send_response(200 if healthy else 503)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if with_body:
                self.wfile.write(body)

        def log_message(self, format, *args):
            logger.debug("health: " + format, *args)

    return _Handler


class HealthServer:
    """Serves ``/live`` and ``/ready`` from the checks of a pipeline.

    The pipeline provides ``is_alive()`` and ``is_ready()``, each returning a
    callable that raises when the pipeline is unhealthy.
    """

    def __init__(self, pipeline, host=DEFAULT_SERVER_HOST, port="8080"):
        self.host = host
        self.port = str(port)
        self.address = _join_host_port(host, self.port)
        self.liveness_checks = {CHECK_NAME: pipeline.is_alive()}
        self.readiness_checks = {CHECK_NAME: pipeline.is_ready()}
        self.listening = threading.Event()
        self.bound_port = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._httpd = None

    def serve(self):
        """Serve until shut down, retrying after a pause when serving fails."""
        handler = _make_handler(self)
        while not self._stopped.is_set():
            try:
                with ThreadingHTTPServer((self.host, int(self.port)), handler) as httpd:
                    with self._lock:
                        if self._stopped.is_set():
                            return
                        self._httpd = httpd
                    self.bound_port = httpd.server_address[1]
                    self.listening.set()
                    httpd.serve_forever()
            except OSError as err:
                logger.error("health server error %s", err)
                self._stopped.wait(RETRY_INTERVAL)
            finally:
                with self._lock:
                    self._httpd = None
                self.listening.clear()

    def shutdown(self):
        """Stop serving."""
        with self._lock:
            self._stopped.set()
            httpd = self._httpd
        if httpd is not None:
            httpd.shutdown()


def new_health_server(pipeline, port):
    """Create a health server for ``pipeline`` and start it in the background."""
    server = HealthServer(pipeline, DEFAULT_SERVER_HOST, port)
    threading.Thread(target=server.serve, name="health-server", daemon=True).start()
    return server