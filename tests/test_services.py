import pytest

from mediameta.core.config import Config, UserState
from mediameta.core.identity import LocalIdentityProvider, NotSignedIn, PermissionDenied, Permissions
from mediameta.db.services import (
    CategoryInUse, CategoryNotFound, CategoryService, TemplateInUse, TemplateNotFound, TemplateService,
)
from mediameta.schema import AttributeKeyCollision, DuplicateFieldName, make_field


@pytest.fixture()
def templates(dbm):
    return TemplateService(dbm)


@pytest.fixture()
def categories(dbm):
    return CategoryService(dbm)


# --- Templates

def test_create_and_read_template(templates, product_fields):
    tid = templates.create_template("  Product ", product_fields)
    assert templates.get_template(tid).name == "Product"
    assert templates.get_fields(tid) == product_fields
    assert [t.id for t in templates.list_templates()] == [tid]


def test_update_replaces_whole_field_list(templates, product_fields):
    tid = templates.create_template("Product", product_fields)
    templates.update_template(tid, fields=[make_field("sku", "text")])
    assert [f.name for f in templates.get_fields(tid)] == ["sku"]
    templates.update_template(tid, name="Item")
    assert templates.get_template(tid).name == "Item"


@pytest.mark.parametrize("fields, error", [
    ([make_field("a", "text"), make_field("a", "text")], DuplicateFieldName),
    ([make_field("Weight_kg", "number"), make_field("Weight-kg", "number")], AttributeKeyCollision),
])
def test_invalid_fields_rejected_on_save(templates, fields, error):
    with pytest.raises(error):
        templates.create_template("Bad", fields)
    assert templates.list_templates() == []


def test_blank_template_name_rejected(templates):
    with pytest.raises(ValueError):
        templates.create_template("  ")


def test_malformed_stored_fields_read_as_empty(templates, session):
    tid = templates.create_template("Product", [make_field("a", "text")])
    templates.get_template(tid).fields_json = "[{"
    assert templates.get_fields(tid) == []


def test_missing_template(templates):
    with pytest.raises(TemplateNotFound):
        templates.get_template(42)


def test_template_delete_gate(templates, categories):
    tid = templates.create_template("Product")
    assert templates.can_delete(tid)
    cid = categories.create_category("Widgets", tid)

    assert templates.usage_count(tid) == 1
    assert not templates.can_delete(tid)
    with pytest.raises(TemplateInUse) as exc:
        templates.delete_template(tid)
    assert exc.value.count == 1
    assert str(exc.value) == "Template 'Product' is used by 1 category"

    categories.delete_category(cid)
    templates.delete_template(tid)
    assert templates.list_templates() == []


# --- Categories

def test_category_needs_template(categories):
    with pytest.raises(TemplateNotFound):
        categories.create_category("Widgets", 99)


def test_category_delete_allowed_when_unused(templates, categories):
    cid = categories.create_category("Widgets", templates.create_template("Product"))
    assert categories.usage_count(cid) == 0
    assert categories.can_delete(cid)
    categories.delete_category(cid)
    with pytest.raises(CategoryNotFound):
        categories.get_category(cid)


@pytest.mark.parametrize("n_images", [1, 3])
def test_category_delete_blocked_with_exact_count(templates, categories, session, make_image, n_images):
    cid = categories.create_category("Widgets", templates.create_template("Product"))
    cat = categories.get_category(cid)
    for i in range(n_images):
        make_image(cat, f"{i}.png", sequence=i)

    assert categories.usage_count(cid) == n_images
    assert not categories.can_delete(cid)
    with pytest.raises(CategoryInUse) as exc:
        categories.delete_category(cid)
    assert exc.value.count == n_images
    assert str(exc.value) == f"Category 'Widgets' is used by {n_images} image(s)"
    assert categories.get_category(cid).name == "Widgets"


def test_category_update_and_counts(templates, categories, make_image):
    t1 = templates.create_template("Product")
    t2 = templates.create_template("Poster")
    cid = categories.create_category("Widgets", t1)
    categories.update_category(cid, name="Gizmos", template_id=t2)
    c = categories.get_category(cid)
    assert (c.name, c.template_id) == ("Gizmos", t2)

    make_image(c, "a.png")
    assert categories.image_counts() == {cid: 1}
    with pytest.raises(TemplateNotFound):
        categories.update_category(cid, template_id=999)


# --- Permissions

def _permissions(name="", groups=()):
    cfg = Config(user=UserState(name=name, groups=list(groups)))
    return Permissions(LocalIdentityProvider(cfg))


def test_admin_gate_on_templates_and_categories(dbm):
    users = _permissions("sam", ["USERS"])
    with pytest.raises(PermissionDenied):
        TemplateService(dbm, users).create_template("Product")

    admins = _permissions("ari", ["ADMINS"])
    tid = TemplateService(dbm, admins).create_template("Product")
    with pytest.raises(PermissionDenied):
        CategoryService(dbm, users).create_category("Widgets", tid)
    CategoryService(dbm, admins).create_category("Widgets", tid)


def test_signed_out_user_is_denied(dbm):
    perms = _permissions()
    with pytest.raises(NotSignedIn):
        TemplateService(dbm, perms).delete_template(1)


def test_sign_in_and_out():
    cfg = Config()
    identity = LocalIdentityProvider(cfg)
    assert identity.current_user() is None
    user = identity.sign_in("ari", ["ADMINS"])
    assert user.is_admin
    assert cfg.user.name == "ari"
    identity.sign_out()
    assert identity.current_user() is None
    assert cfg.user.name == ""
