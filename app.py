from __future__ import annotations

import logging
from typing import List

import streamlit as st

from mt_rank.backends import open_backend
from mt_rank.config import load_config, RunConfig
from mt_rank.errors import MtRankError, SessionStateError, ValidationFailed
from mt_rank.instructions import instructions_md
from mt_rank.session import AnnotationSession, Phase, SentenceDraft


st.set_page_config(page_title="Translation Ranker", layout="wide")


# ---------------- Config ----------------
try:
    cfg: RunConfig = load_config("config.yaml")
except (MtRankError, ValueError) as e:
    st.error(f"Config error: {e}")
    st.stop()

logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ---------------- Session State ----------------
def ss_init():
    st.session_state.setdefault("session", None)  # AnnotationSession
    st.session_state.setdefault("load_result", None)
    st.session_state.setdefault("submit_outcome", None)
    st.session_state.setdefault("batch_nonce", 0)
    st.session_state.setdefault("ui_warning", None)


WIDGET_PREFIXES = ("moveto_", "comment_")


def _clear_widget_state():
    for key in [k for k in st.session_state.keys() if str(k).startswith(WIDGET_PREFIXES)]:
        del st.session_state[key]


def _new_session() -> AnnotationSession:
    _clear_widget_state()
    st.session_state.batch_nonce += 1
    loader, committer = open_backend(cfg)
    session = AnnotationSession(loader, committer, cfg)
    st.session_state.load_result = session.load_batch()
    st.session_state.submit_outcome = None
    return session


ss_init()

if st.session_state.session is None:
    try:
        st.session_state.session = _new_session()
    except MtRankError as e:
        st.error(f"Backend error: {e}")
        st.stop()

session: AnnotationSession = st.session_state.session


# ---------------- Helpers ----------------
def _move(sentence_id: str, from_index: int, to_index: int):
    try:
        st.session_state.session.reorder(sentence_id, from_index, to_index)
    except (IndexError, SessionStateError) as e:
        st.session_state.ui_warning = f"Could not move translation: {e}"


def _move_to(sentence_id: str, from_index: int, widget_key: str):
    target = int(st.session_state[widget_key]) - 1
    if target != from_index:
        _move(sentence_id, from_index, target)


def _write_comment(sentence_id: str, widget_key: str):
    st.session_state.session.set_comment(sentence_id, st.session_state[widget_key])


def _render_draft(idx: int, d: SentenceDraft):
    nonce = st.session_state.batch_nonce
    with st.container(border=True):
        st.markdown(f"### Sentence {idx + 1} · ID: {d.sentence_id}")
        st.markdown("**Original sentence:**")
        st.write(d.sentence)

        if d.committed:
            st.success(f"Saved (round {d.last_result.round if d.last_result else d.needed_round}).")
            return

        st.markdown("**Rank translations (best first):**")
        n = len(d.order)
        for pos, cand in enumerate(d.order):
            cols = st.columns([1, 12, 1, 1, 2], vertical_alignment="center")
            with cols[0]:
                st.markdown(f"**{pos + 1}**")
            with cols[1]:
                st.write(cand.text)
            with cols[2]:
                st.button("↑", key=f"up_{d.sentence_id}_{pos}", disabled=(pos == 0),
                          on_click=_move, args=(d.sentence_id, pos, pos - 1))
            with cols[3]:
                st.button("↓", key=f"down_{d.sentence_id}_{pos}", disabled=(pos == n - 1),
                          on_click=_move, args=(d.sentence_id, pos, pos + 1))
            with cols[4]:
                wkey = f"moveto_{nonce}_{d.sentence_id}_{cand.column_key}"
                st.session_state[wkey] = pos + 1
                st.selectbox("Move to", options=list(range(1, n + 1)), key=wkey,
                             label_visibility="collapsed",
                             on_change=_move_to, args=(d.sentence_id, pos, wkey))

        ckey = f"comment_{nonce}_{d.sentence_id}"
        st.session_state.setdefault(ckey, d.comment)
        st.text_area(
            "Comments",
            key=ckey,
            placeholder="Please explain your reasoning for these rankings. What did you like or dislike about the translation options?",
            on_change=_write_comment,
            args=(d.sentence_id, ckey),
        )

        r = d.last_result
        if r is not None and not r.success:
            st.error(f"Not saved: {r.error}")
            if r.error_code == "AllRoundsFilled":
                if st.button("Skip this sentence", key=f"skip_{d.sentence_id}"):
                    session.discard(d.sentence_id)
                    st.rerun()


# ---------------- UI ----------------
st.title("Translation Ranker")

if cfg.ui_show_instructions:
    with st.expander("Instructions", expanded=False):
        st.markdown(instructions_md)

if session.phase == Phase.ERROR:
    st.error(f"Error loading data: {session.error}")
    if st.button("Try again", type="primary"):
        st.session_state.session = _new_session()
        st.rerun()
    st.stop()

if session.phase == Phase.DONE:
    st.header("Thank you!")
    st.success("Your annotations have been successfully submitted.")
    if cfg.ui_completion_url:
        st.link_button("Complete the study", cfg.ui_completion_url, type="primary")
    if st.button("Annotate another batch"):
        st.session_state.session = _new_session()
        st.rerun()
    st.stop()

load_result = st.session_state.load_result
if load_result is not None and load_result.exhausted:
    st.info("All sentences have been fully annotated. There is nothing left to do. Thank you!")
    if st.button("Check again"):
        st.session_state.session = _new_session()
        st.rerun()
    st.stop()

if session.needs_new_batch():
    st.info("Every sentence in this batch was taken by other annotators before you submitted.")
    if st.button("Load a new batch", type="primary"):
        st.session_state.session = _new_session()
        st.rerun()
    st.stop()

if st.session_state.ui_warning:
    st.warning(st.session_state.ui_warning)
    st.session_state.ui_warning = None

st.caption(f"You are annotating {len(session.drafts)} sentence{'s' if len(session.drafts) != 1 else ''}.")

outcome = st.session_state.submit_outcome
if outcome is not None and not outcome.success and outcome.error:
    st.error(f"Error: {outcome.error}")

for i, d in enumerate(session.drafts):
    _render_draft(i, d)

# ---------------- Submit ----------------
st.divider()

missing = session.missing_requirements()
ready = session.can_submit()

if st.button("Submit annotations", type="primary", disabled=not ready, use_container_width=True):
    try:
        st.session_state.submit_outcome = session.submit()
    except ValidationFailed as e:
        st.error(str(e))
    except SessionStateError as e:
        st.error(str(e))
    st.rerun()

if missing:
    lines: List[str] = [f"Sentence {sid}: {', '.join(reqs)}" for sid, reqs in missing.items()]
    st.warning("Please reorder the rankings and add a comment for every sentence:\n- " + "\n- ".join(lines))
elif ready:
    st.info("All interactions complete. Your rankings and comments will be saved to the annotation sheet.")
