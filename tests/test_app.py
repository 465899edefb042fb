import copy
from pathlib import Path

import pytest
import yaml
from streamlit.testing.v1 import AppTest

from tests.helpers import HEADERS, make_row

from mt_rank.config import DEFAULTS, default_config
from mt_rank.session import Phase
from mt_rank.xlsx_io import build_store_workbook

APP = Path(__file__).resolve().parents[1] / "app.py"


@pytest.fixture()
def app_test(tmp_path, monkeypatch):
    store = tmp_path / "annotations.xlsx"
    build_store_workbook(HEADERS, [make_row("1")], default_config()).save(store)
    data = copy.deepcopy(DEFAULTS)
    data["store"]["xlsx_path"] = str(store)
    data["batch"]["size"] = 1
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    at = AppTest.from_file(str(APP), default_timeout=30)
    at.run()
    assert not at.exception
    return at


def _button(at, label):
    return next(b for b in at.button if b.label == label)


def test_comment_box_is_empty_for_the_next_batch(app_test):
    at = app_test
    at.text_area(key="comment_1_1").input("reasoning from the first batch").run()
    assert at.session_state["session"].draft("1").comment == "reasoning from the first batch"

    at.session_state["session"] = None
    at.run()
    assert at.session_state["batch_nonce"] == 2
    assert at.text_area(key="comment_2_1").value == ""
    assert at.session_state["session"].draft("1").comment == ""


def test_rejected_move_is_shown_to_the_annotator(app_test):
    at = app_test
    at.session_state["session"].phase = Phase.SUBMITTING
    at.button(key="down_1_0").click().run()
    assert not at.exception
    assert any("Could not move translation" in w.value for w in at.warning)


def test_empty_batch_after_discard_offers_a_new_batch(app_test):
    at = app_test
    at.session_state["session"].discard("1")
    at.run()
    assert "Submit annotations" not in [b.label for b in at.button]

    _button(at, "Load a new batch").click().run()
    assert [d.sentence_id for d in at.session_state["session"].drafts] == ["1"]
