"""
HTTP host for the `remote` backend.

Runs next to the store (xlsx workbook or Google Sheet) and serves:
  GET  /export.csv  header + data rows as CSV, the `store.csv_url` of remote clients
  POST /update      the annotations envelope, committed with CommitCoordinator

Run with:  python -m mt_rank.endpoint --config config.yaml --port 8765
The serving config must name a local store (backend xlsx or sheets); clients
use backend `remote` with csv_url/write_url pointing here.
"""
from __future__ import annotations

import argparse
import csv
import io
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from .backends import open_store
from .commit import CommitCoordinator
from .config import RunConfig, load_config
from .errors import StoreError
from .store import TableStore
from .wire import handle_update_request


logger = logging.getLogger(__name__)


def table_to_csv(headers, rows) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return out.getvalue()


def create_app(cfg: RunConfig, store: Optional[TableStore] = None) -> Flask:
    store = store or open_store(cfg)
    coordinator = CommitCoordinator(store, cfg)
    app = Flask(__name__)

    # ---------- Read ----------
    @app.get("/export.csv")
    def export_csv():
        try:
            headers, rows = store.read_table()
        except StoreError as e:
            logger.error("Export failed: %s", e)
            return jsonify({"error": str(e)}), 503
        return Response(table_to_csv(headers, rows), mimetype="text/csv")

    # ---------- Write ----------
    @app.post("/update")
    def update():
        payload = request.get_json(silent=True)
        status, body = handle_update_request(payload, coordinator)
        return jsonify(body), status

    return app


def main(argv=None):
    ap = argparse.ArgumentParser(description="Serve the annotation store over HTTP")
    ap.add_argument("--config", default="config.yaml")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8765)
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app(cfg)
    logger.info("Serving %s store on http://%s:%d", cfg.backend, args.host, args.port)
    app.run(host=args.host, port=args.port, threaded=True)


if __name__ == "__main__":
    main()
