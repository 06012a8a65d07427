from PySide6.QtWidgets import QComboBox, QGroupBox, QLineEdit

from mediameta.ui.metadata_form import MetadataForm


def test_form_builds_controls(qtbot, product_fields):
    w = MetadataForm(product_fields, {"weight": 12, "specs.color": "red"})
    qtbot.addWidget(w)

    assert w.paths() == ["weight", "specs.color", "specs.notes"]
    assert isinstance(w.widget("weight"), QLineEdit)
    assert w.widget("weight").text() == "12"
    color = w.widget("specs.color")
    assert isinstance(color, QComboBox)
    assert [color.itemText(i) for i in range(color.count())] == ["", "red", "blue"]
    assert color.currentText() == "red"
    assert [b.title() for b in w.findChildren(QGroupBox)] == ["specs"]


def test_building_emits_nothing(qtbot, product_fields):
    w = MetadataForm()
    qtbot.addWidget(w)
    seen = []
    w.metadataChanged.connect(seen.append)
    w.set_form(product_fields, {"weight": 1, "specs.color": "blue", "specs.notes": "x"})
    assert seen == []


def test_edit_emits_new_instance(qtbot, product_fields):
    w = MetadataForm(product_fields, {"weight": 12, "specs.color": "red"})
    qtbot.addWidget(w)

    with qtbot.waitSignal(w.metadataChanged) as blocker:
        w.widget("specs.color").setCurrentText("blue")
    assert blocker.args[0] == {"weight": 12, "specs.color": "blue"}
    assert w.metadata()["specs.color"] == "blue"


def test_clearing_number_stores_none(qtbot, product_fields):
    w = MetadataForm(product_fields, {"weight": 12})
    qtbot.addWidget(w)

    with qtbot.waitSignal(w.metadataChanged) as blocker:
        w.widget("weight").setText("")
    assert blocker.args[0]["weight"] is None

    w.set_form(product_fields, w.metadata())
    assert w.widget("weight").text() == ""


def test_empty_select_choice_is_none(qtbot, product_fields):
    w = MetadataForm(product_fields, {"specs.color": "red"})
    qtbot.addWidget(w)
    w.widget("specs.color").setCurrentIndex(0)
    assert w.metadata()["specs.color"] is None


def test_invalid_number_is_flagged_not_emitted(qtbot, product_fields):
    w = MetadataForm(product_fields, {"weight": 12})
    qtbot.addWidget(w)
    seen = []
    w.metadataChanged.connect(seen.append)

    w.widget("weight").setText("heavy")

    assert seen == []
    assert w.metadata() == {"weight": 12}
    assert "weight" in w.widget("weight").toolTip()


def test_read_only_form_disables_controls(qtbot, product_fields):
    w = MetadataForm(product_fields, {}, read_only=True)
    qtbot.addWidget(w)
    assert not w.widget("weight").isEnabled()
