from __future__ import annotations

from typing import Dict, List

import streamlit as st

from mt_rank.backends import open_backend
from mt_rank.config import RunConfig, load_config
from mt_rank.errors import MtRankError
from mt_rank.rows import parse_records, resolve_schema
from mt_rank.stats import filled_rounds, mean_rank_by_key, round_progress
from mt_rank.xlsx_io import build_store_workbook, read_uploaded_table, save_workbook_to_bytes


def _prepare_tab(cfg: RunConfig):
    st.subheader("Upload (CSV/XLSX) → annotation store XLSX")
    st.write(
        "Upload a CSV or XLSX with an `id` column, a `sentence` column and one column per candidate "
        f"(`{', '.join(cfg.candidate_keys)}`).\n\n"
        "- Row order is preserved exactly as provided.\n"
        f"- Missing `Annotator_<n>_Rankings` / `Annotator_<n>_Comments` columns (n = 1..{cfg.num_rounds}) are added.\n"
        "- Existing annotations are kept."
    )

    up = st.file_uploader("Upload file", type=["csv", "txt", "xlsx"], accept_multiple_files=False, key="store_uploader")
    out_name = st.text_input("Output filename", value="annotations.xlsx", key="store_out_name")

    if up is None:
        return
    try:
        headers, rows = read_uploaded_table(up.name, up.read())
        resolve_schema(headers, cfg)
        records = parse_records(headers, rows, cfg)
    except MtRankError as e:
        st.error(f"Failed to read upload: {e}")
        return

    st.success(f"Read {len(rows)} row(s); {len(records)} usable sentence(s) within id range {cfg.id_min}–{cfg.id_max}.")
    st.dataframe(
        [{"id": r.sentence_id, "row": r.row_coordinate, "sentence": r.sentence} for r in records[:5]],
        width="stretch",
    )

    wb = build_store_workbook(headers, rows, cfg)
    st.download_button(
        "Download store XLSX",
        data=save_workbook_to_bytes(wb),
        file_name=out_name if out_name.lower().endswith(".xlsx") else out_name + ".xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        use_container_width=True,
    )


def _progress_tab(cfg: RunConfig):
    st.subheader("Annotation progress (blind, aggregate only)")
    if not st.button("Refresh from store", type="primary"):
        return
    try:
        loader, _ = open_backend(cfg)
        headers, rows = loader()
        records = parse_records(headers, rows, cfg)
    except MtRankError as e:
        st.error(f"Failed to read store: {e}")
        return

    progress = round_progress(records, cfg)
    st.markdown("### Sentences by next needed round")
    st.json(progress)
    st.metric("Filled round slots", f"{filled_rounds(records)} / {len(records) * cfg.num_rounds}")

    st.markdown("### Mean rank per candidate column (1 = best)")
    means: Dict[str, float] = mean_rank_by_key(records, cfg)
    table: List[Dict[str, object]] = [
        {"column": k, "mean_rank": None if v != v else round(v, 3)} for k, v in means.items()
    ]
    st.dataframe(table, width="stretch")


def app():
    st.set_page_config(page_title="Translation Ranker – Store Tools", layout="wide")
    st.title("Translation Ranker – Store Tools")

    cfg: RunConfig = load_config("config.yaml")
    st.caption(f"Backend: {cfg.backend}. {cfg.num_candidates} candidates per sentence, {cfg.num_rounds} rounds.")

    with st.expander("Current config (debug)", expanded=False):
        st.json(
            {
                "candidate_keys": list(cfg.candidate_keys),
                "id_range": [cfg.id_min, cfg.id_max],
                "num_rounds": cfg.num_rounds,
                "batch_size": cfg.batch_size,
                "backend": cfg.backend,
                "xlsx_path": cfg.xlsx_path,
                "csv_url": cfg.export_csv_url(),
            },
            expanded=False,
        )

    tab1, tab2 = st.tabs(["Prepare store", "Progress"])
    with tab1:
        _prepare_tab(cfg)
    with tab2:
        _progress_tab(cfg)


app()
