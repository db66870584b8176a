from funnelflow.personalization import parse_personalization_tokens, personalization_data


def test_known_tokens_are_replaced():
    text = "Hi {{first_name}}, welcome to {{company_name}}"
    assert (
        parse_personalization_tokens(text, {"first_name": "Ada", "company_name": "Acme"})
        == "Hi Ada, welcome to Acme"
    )


def test_unknown_tokens_are_left_verbatim():
    assert parse_personalization_tokens("Hi {{nickname}}", {"first_name": "Ada"}) == "Hi {{nickname}}"


def test_none_and_empty_values_render_empty():
    assert parse_personalization_tokens("[{{a}}][{{b}}]", {"a": None, "b": ""}) == "[][]"


def test_empty_text():
    assert parse_personalization_tokens(None, {}) == ""
    assert parse_personalization_tokens("", {"a": 1}) == ""


def test_personalization_data_includes_custom_fields(make_contact, make_workflow):
    contact = make_contact(last_name=None)
    data = personalization_data(contact, make_workflow([]))
    assert data["full_name"] == "Ada"
    assert data["last_name"] == ""
    assert data["budget_min"] == 250000
    assert data["workflow_name"] == "Buyer nurture"
    assert "workflow_name" not in personalization_data(contact)
