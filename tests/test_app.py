from __future__ import annotations

import io

import pytest

from recipehub.models import RECIPE_IMAGES, RECIPES, SAVED_RECIPES
from recipehub.recipes import RecipeForm, RecipeService
from recipehub.session import SessionContext


@pytest.fixture
def add_recipe(tables, objects):
    def _add_recipe(user, name="Chocolate Cake", images=(), **fields):
        values = {"recipe_name": name, "description": "Rich and moist.", "ingredients": "flour\nsugar"}
        values.update(fields)
        service = RecipeService(tables, objects)
        return service.add_recipe(SessionContext(user=user), RecipeForm.from_mapping(values), list(images))

    return _add_recipe


def _png(name):
    from recipehub.images import PendingUpload

    return PendingUpload(filename=name, data=b"png", content_type="image/png")


def test_index_shows_existing_recipes(client, make_user, add_recipe):
    add_recipe(make_user())

    response = client.get("/")

    assert response.status_code == 200
    assert b"Chocolate Cake" in response.data


def test_can_add_recipe_via_form(client, tables, objects, make_user, login):
    login(make_user())

    response = client.post(
        "/recipes",
        data={
            "recipe_name": "Summer Salad",
            "description": "Fresh veggies",
            "ingredients": "tomatoes\ncucumber",
            "instructions": "Mix everything.",
            "images": [(io.BytesIO(b"fake image"), "salad.png")],
        },
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert "Recipe &#39;Summer Salad&#39; saved." in response.get_data(as_text=True)
    assert [row["recipe_name"] for row in tables.rows(RECIPES)] == ["Summer Salad"]
    assert len(tables.rows(RECIPE_IMAGES)) == 1
    assert list(objects.blobs.values()) == [b"fake image"]


def test_cannot_add_recipe_without_name(client, tables, make_user, login):
    login(make_user())

    response = client.post("/recipes", data={"recipe_name": "", "description": ""}, follow_redirects=True)

    assert response.status_code == 200
    assert tables.rows(RECIPES) == []
    assert b"Please provide a recipe name." in response.data


def test_unsupported_image_is_rejected(client, tables, make_user, login):
    login(make_user())

    response = client.post(
        "/recipes",
        data={"recipe_name": "Soup", "images": [(io.BytesIO(b"%PDF"), "soup.pdf")]},
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert b"Unsupported image format." in response.data
    assert tables.rows(RECIPES) == []


def test_adding_a_recipe_requires_login(client):
    response = client.get("/recipes/new")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]


def test_recipe_detail_shows_author_and_average(client, tables, make_user, add_recipe):
    from recipehub.reviews import submit_rating

    author = make_user(name="Chef")
    recipe = add_recipe(author)
    submit_rating(tables, recipe_id=recipe.recipe_id, user=make_user(name="Fan"), rating=4)
    submit_rating(tables, recipe_id=recipe.recipe_id, user=make_user(name="Critic"), rating=1)

    page = client.get(f"/recipes/{recipe.recipe_id}").get_data(as_text=True)

    assert "By Chef" in page
    assert "Average rating: 2.5" in page
    assert "log in</a> to share your rating" in page


def test_missing_recipe_redirects_home(client):
    response = client.get("/recipes/does-not-exist", follow_redirects=True)

    assert response.status_code == 200
    assert b"Recipe not found." in response.data


def test_edit_recipe_page_prefills_current_values(client, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(user, name="Pasta Salad", ingredients="pasta\ntomatoes", images=[_png("a.png")])
    login(user)

    response = client.get(f"/recipes/{recipe.recipe_id}/edit")

    assert response.status_code == 200
    page = response.get_data(as_text=True)
    assert 'value="Pasta Salad"' in page
    assert "pasta\ntomatoes" in page
    assert f'name="keep_image" value="{recipe.image_urls[0]}" checked' in page


def test_update_removes_one_image_and_adds_another(client, tables, objects, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(user, images=[_png("a.png"), _png("b.png")])
    a, b = recipe.image_urls
    login(user)

    response = client.post(
        f"/recipes/{recipe.recipe_id}",
        data={
            "recipe_name": "Dark Chocolate Cake",
            "ingredients": "flour\ncocoa",
            "keep_image": [b],
            "images": [(io.BytesIO(b"new photo"), "c.png")],
        },
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert "Recipe &#39;Dark Chocolate Cake&#39; updated." in response.get_data(as_text=True)
    urls = {row["image_url"] for row in tables.rows(RECIPE_IMAGES)}
    assert len(urls) == 2
    assert b in urls and a not in urls
    assert objects.path_from_url(a) not in objects.blobs
    assert b"new photo" in objects.blobs.values()


def test_failed_update_keeps_the_form_and_stored_recipe(client, tables, objects, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(user, name="Soup", images=[_png("a.png")])
    objects.reject_uploads_containing.add("broken")
    login(user)

    response = client.post(
        f"/recipes/{recipe.recipe_id}",
        data={
            "recipe_name": "Renamed Soup",
            "keep_image": recipe.image_urls,
            "images": [(io.BytesIO(b"x"), "broken.png")],
        },
        content_type="multipart/form-data",
    )

    assert response.status_code == 502
    page = response.get_data(as_text=True)
    assert "Failed to update recipe" in page
    assert 'value="Renamed Soup"' in page
    assert [row["recipe_name"] for row in tables.rows(RECIPES)] == ["Soup"]
    assert [row["image_url"] for row in tables.rows(RECIPE_IMAGES)] == recipe.image_urls


def test_other_users_cannot_edit(client, make_user, login, add_recipe):
    recipe = add_recipe(make_user(name="Owner"))
    login(make_user(name="Stranger"))

    assert client.get(f"/recipes/{recipe.recipe_id}/edit").status_code == 403
    assert client.post(f"/recipes/{recipe.recipe_id}", data={"recipe_name": "Mine"}).status_code == 403


def test_delete_recipe_removes_item_and_images(client, tables, objects, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(user, name="Tofu Stir Fry", images=[_png("a.png"), _png("b.png")])
    login(user)

    response = client.post(f"/recipes/{recipe.recipe_id}/delete", follow_redirects=True)

    assert response.status_code == 200
    assert b"Recipe deleted." in response.data
    assert tables.rows(RECIPES) == []
    assert tables.rows(RECIPE_IMAGES) == []
    assert objects.blobs == {}


def test_rating_twice_updates_the_average(client, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(make_user(name="Chef"))
    login(user)

    client.post(f"/recipes/{recipe.recipe_id}/rating", data={"rating": "2"})
    response = client.post(
        f"/recipes/{recipe.recipe_id}/rating",
        data={"rating": "5", "comment": "Even better"},
        follow_redirects=True,
    )

    page = response.get_data(as_text=True)
    assert "Average rating: 5.0" in page
    assert "Update your rating" in page
    assert "Even better" in page


def test_anonymous_save_redirects_to_login(client, tables, make_user, add_recipe):
    recipe = add_recipe(make_user())

    response = client.post(f"/recipes/{recipe.recipe_id}/save")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]
    assert tables.rows(SAVED_RECIPES) == []


def test_save_toggle_via_form(client, tables, make_user, login, add_recipe):
    user = make_user()
    recipe = add_recipe(make_user(name="Chef"), name="Gumbo")
    login(user)

    response = client.post(f"/recipes/{recipe.recipe_id}/save", follow_redirects=True)
    assert b"Recipe saved." in response.data
    assert len(tables.rows(SAVED_RECIPES)) == 1
    assert b"Gumbo" in client.get("/saved").data

    response = client.post(f"/recipes/{recipe.recipe_id}/save", follow_redirects=True)
    assert b"Recipe removed from saved recipes." in response.data
    assert tables.rows(SAVED_RECIPES) == []


def test_search_page(client, make_user, add_recipe):
    user = make_user()
    add_recipe(user, name="Apple Pie")
    add_recipe(user, name="Banana Bread")

    page = client.get("/search?q=banana").get_data(as_text=True)

    assert "Banana Bread" in page
    assert "Apple Pie" not in page


def test_my_recipes_lists_only_own(client, make_user, login, add_recipe):
    user = make_user()
    add_recipe(user, name="Mine")
    add_recipe(make_user(name="Other"), name="Theirs")
    login(user)

    page = client.get("/my-recipes").get_data(as_text=True)

    assert "Mine" in page
    assert "Theirs" not in page


def test_backend_failure_on_a_read_page_shows_an_error(client, tables):
    tables.broken.add(("select", RECIPES))

    response = client.get("/")

    assert response.status_code == 502
    assert b"select on recipe rejected" in response.data
