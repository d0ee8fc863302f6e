from __future__ import annotations

import io

import pytest

from recipehub.errors import BackendError
from recipehub.events import EventForm, EventService
from recipehub.images import PendingUpload
from recipehub.models import CATEGORIES, EVENTS, OCCASIONS, RECIPES, REVIEWS, SAVED_RECIPES, USERS
from recipehub.recipes import RecipeForm, RecipeService
from recipehub.reviews import submit_rating
from recipehub.saved import toggle_saved
from recipehub.session import SessionContext


@pytest.fixture
def admin(make_user, login):
    user = make_user(name="Boss", role="Admin")
    login(user)
    return user


def test_anonymous_visitors_are_sent_to_login(client):
    response = client.get("/admin/")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]


def test_regular_users_are_refused(client, make_user, login):
    login(make_user())

    response = client.get("/admin/users")

    assert response.status_code == 403
    assert b"Only administrators can do that." in response.data


def test_dashboard_counts(client, tables, admin, make_user):
    make_user(name="Ann")
    tables.insert(CATEGORIES, {"category_name": "Dessert", "image_url": None})

    page = client.get("/admin/").get_data(as_text=True)

    assert "<dt>Users</dt><dd>2</dd>" in page
    assert "<dt>Categories</dt><dd>1</dd>" in page
    assert "<dt>Recipes</dt><dd>0</dd>" in page


def test_update_user_role(client, tables, admin, make_user):
    user = make_user(name="Ann")

    response = client.post(
        f"/admin/users/{user.user_id}",
        data={"user_name": "Ann", "email": user.email, "role": "Admin"},
        follow_redirects=True,
    )

    assert b"User updated." in response.data
    row = next(row for row in tables.rows(USERS) if row["user_id"] == user.user_id)
    assert row["role"] == "Admin"


def test_update_user_rejects_unknown_role(client, tables, admin, make_user):
    user = make_user(name="Ann")

    response = client.post(
        f"/admin/users/{user.user_id}",
        data={"user_name": "Ann", "email": user.email, "role": "Owner"},
        follow_redirects=True,
    )

    assert b"Role must be one of: User, Admin." in response.data


def test_delete_user_removes_their_content(client, tables, objects, admin, make_user):
    ann = make_user(name="Ann")
    context = SessionContext(user=ann)
    recipe = RecipeService(tables, objects).add_recipe(context, RecipeForm.from_mapping({"recipe_name": "Stew"}))
    submit_rating(tables, recipe_id=recipe.recipe_id, user=ann, rating=4)
    toggle_saved(tables, context, recipe.recipe_id)

    response = client.post(f"/admin/users/{ann.user_id}/delete", follow_redirects=True)

    assert b"User deleted." in response.data
    assert [row["user_id"] for row in tables.rows(USERS)] == [admin.user_id]
    assert tables.rows(RECIPES) == []
    assert tables.rows(REVIEWS) == []
    assert tables.rows(SAVED_RECIPES) == []


def test_admin_cannot_delete_themselves(client, tables, admin):
    response = client.post(f"/admin/users/{admin.user_id}/delete", follow_redirects=True)

    assert b"You cannot delete your own account." in response.data
    assert len(tables.rows(USERS)) == 1


def test_admin_can_delete_any_recipe(client, tables, objects, admin, make_user):
    owner = make_user(name="Ann")
    recipe = RecipeService(tables, objects).add_recipe(
        SessionContext(user=owner), RecipeForm.from_mapping({"recipe_name": "Stew"})
    )

    response = client.post(f"/admin/recipes/{recipe.recipe_id}/delete", follow_redirects=True)

    assert b"Recipe deleted." in response.data
    assert tables.rows(RECIPES) == []


def test_category_crud(client, tables, objects, admin):
    client.post(
        "/admin/categories",
        data={"category_name": "Dessert", "image": (io.BytesIO(b"cake"), "cake.png")},
        content_type="multipart/form-data",
    )
    category = tables.rows(CATEGORIES)[0]
    assert category["category_name"] == "Dessert"
    assert objects.path_from_url(category["image_url"]).startswith("categories/")

    response = client.post(
        f"/admin/categories/{category['category_id']}",
        data={"category_name": "Sweets", "remove_image": "1"},
        follow_redirects=True,
    )
    assert b"Category updated." in response.data
    assert tables.rows(CATEGORIES)[0]["category_name"] == "Sweets"
    assert tables.rows(CATEGORIES)[0]["image_url"] is None
    assert objects.blobs == {}

    response = client.post(f"/admin/categories/{category['category_id']}/delete", follow_redirects=True)
    assert b"Category deleted." in response.data
    assert tables.rows(CATEGORIES) == []


def test_category_name_is_required(client, tables, admin):
    response = client.post("/admin/categories", data={"category_name": " "}, follow_redirects=True)

    assert b"Please provide a category name." in response.data
    assert tables.rows(CATEGORIES) == []


def test_deleting_a_category_clears_it_from_recipes(client, tables, objects, admin):
    category = tables.insert(CATEGORIES, {"category_name": "Soup", "image_url": None})
    RecipeService(tables, objects).add_recipe(
        SessionContext(user=admin),
        RecipeForm.from_mapping({"recipe_name": "Borscht", "category_id": category["category_id"]}),
    )

    client.post(f"/admin/categories/{category['category_id']}/delete")

    assert tables.rows(RECIPES)[0]["category_id"] is None


def test_occasion_requires_existing_category(client, tables, admin):
    response = client.post(
        "/admin/occasions", data={"name": "Christmas", "category_id": "missing"}, follow_redirects=True
    )

    assert b"Category &#39;missing&#39; does not exist." in response.data
    assert tables.rows(OCCASIONS) == []


def test_occasion_crud(client, tables, admin):
    category = tables.insert(CATEGORIES, {"category_name": "Dessert", "image_url": None})

    client.post("/admin/occasions", data={"name": "Christmas", "category_id": category["category_id"]})
    occasion = tables.rows(OCCASIONS)[0]
    assert occasion["category_id"] == category["category_id"]

    client.post(f"/admin/occasions/{occasion['occasion_id']}", data={"name": "Midsummer", "category_id": ""})
    assert tables.rows(OCCASIONS)[0]["name"] == "Midsummer"
    assert tables.rows(OCCASIONS)[0]["category_id"] is None

    response = client.post(f"/admin/occasions/{occasion['occasion_id']}/delete", follow_redirects=True)
    assert b"Occasion deleted." in response.data
    assert tables.rows(OCCASIONS) == []


def test_event_lifecycle(client, tables, objects, admin):
    response = client.post(
        "/admin/events",
        data={
            "title": "Baking day",
            "description": "Bring flour.",
            "start_date": "2024-05-01",
            "end_date": "2024-05-02",
            "image": (io.BytesIO(b"poster"), "poster.jpg"),
        },
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Event added." in response.data
    event = tables.rows(EVENTS)[0]
    assert event["admin_id"] == admin.user_id
    assert objects.path_from_url(event["image_url"]).startswith("events/")

    page = client.get("/events").get_data(as_text=True)
    assert "Baking day" in page
    assert "Bring flour." in client.get(f"/events/{event['event_id']}").get_data(as_text=True)

    response = client.post(f"/admin/events/{event['event_id']}/delete", follow_redirects=True)
    assert b"Event deleted." in response.data
    assert tables.rows(EVENTS) == []
    assert objects.blobs == {}


def test_event_end_must_not_precede_start(client, tables, admin):
    response = client.post(
        "/admin/events",
        data={"title": "Backwards", "start_date": "2024-05-02", "end_date": "2024-05-01"},
        follow_redirects=True,
    )

    assert b"The end date cannot be before the start date." in response.data
    assert tables.rows(EVENTS) == []


def test_events_are_listed_by_start_date(client, tables, admin):
    for title, start in [("Later", "2024-06-01"), ("Sooner", "2024-03-01")]:
        client.post("/admin/events", data={"title": title, "start_date": start})

    page = client.get("/events").get_data(as_text=True)

    assert page.index("Sooner") < page.index("Later")


def test_missing_event_is_not_found(client):
    response = client.get("/events/nope")

    assert response.status_code == 404


def _poster(data):
    return PendingUpload(filename="poster.png", data=data, content_type="image/png")


def test_failed_event_update_keeps_the_current_image(tables, objects, make_user):
    boss = make_user(name="Boss", role="Admin")
    service = EventService(tables, objects)
    form = EventForm.from_mapping({"title": "Fair", "start_date": "2024-05-01"})
    event = service.add_event(boss, form, _poster(b"first"))
    tables.broken.add(("update", EVENTS))

    with pytest.raises(BackendError):
        service.update_event(event.event_id, form, _poster(b"second"))

    assert tables.rows(EVENTS)[0]["image_url"] == event.image_url
    assert list(objects.blobs.values()) == [b"first"]


def test_failed_event_insert_leaves_no_image(tables, objects, make_user):
    boss = make_user(name="Boss", role="Admin")
    tables.broken.add(("insert", EVENTS))
    form = EventForm.from_mapping({"title": "Fair", "start_date": "2024-05-01"})

    with pytest.raises(BackendError):
        EventService(tables, objects).add_event(boss, form, _poster(b"first"))

    assert tables.rows(EVENTS) == []
    assert objects.blobs == {}
