import pytest

from funnelflow.actions import send_email, send_sms
from funnelflow.contracts import SendEmailConfig, SendSmsConfig


@pytest.mark.asyncio
async def test_send_email_personalizes_and_hands_off(make_contact, make_context, delivery):
    context = await make_context(make_contact())
    config = SendEmailConfig(
        subject="Hello {{first_name}}",
        content_html="<p>Budget {{budget_min}} for {{full_name}} {{unknown}}</p>",
        template_id="tpl-1",
        from_name="Agency",
    )

    result = await send_email(config, context)

    assert result.success
    assert result.data["to"] == "ada@example.com"
    assert result.data["subject"] == "Hello Ada"
    assert result.data["template_id"] == "tpl-1"
    assert result.data["sent_at"] == context.now().isoformat()
    assert len(delivery.emails) == 1
    sent = delivery.emails[0]
    assert sent.content_html == "<p>Budget 250000 for Ada Lovelace {{unknown}}</p>"
    assert sent.from_name == "Agency"
    assert sent.metadata["contact_id"] == "contact-1"


@pytest.mark.asyncio
async def test_send_email_without_address_fails_before_delivery(make_contact, make_context, delivery):
    context = await make_context(make_contact(email=None))

    result = await send_email(SendEmailConfig(subject="Hi"), context)

    assert not result.success
    assert result.error == "Contact does not have an email address"
    assert delivery.emails == []


@pytest.mark.asyncio
async def test_send_sms_reports_segments(make_contact, make_context, delivery):
    context = await make_context(make_contact())
    message = "Hi {{first_name}} " + "x" * 200

    result = await send_sms(SendSmsConfig(message=message), context)

    assert result.success
    assert result.data["to"] == "+15550100"
    assert result.data["message"].startswith("Hi Ada ")
    assert result.data["segments"] == 2
    assert delivery.sms[0].message == result.data["message"]


@pytest.mark.asyncio
async def test_send_sms_without_phone_fails(make_contact, make_context, delivery):
    context = await make_context(make_contact(phone=""))

    result = await send_sms(SendSmsConfig(message="Hi"), context)

    assert result.error == "Contact does not have a phone number"
    assert delivery.sms == []


@pytest.mark.asyncio
async def test_delivery_errors_become_failed_results(make_contact, make_context, delivery):
    async def boom(message):
        raise RuntimeError("provider down")

    delivery.send_email = boom
    context = await make_context(make_contact())

    result = await send_email(SendEmailConfig(subject="Hi"), context)

    assert not result.success
    assert result.error == "provider down"
