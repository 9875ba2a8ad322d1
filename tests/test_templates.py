from api.config.logging import mask_email
from api.v1.infra.mail.templates import render_owner_notification, render_sender_reply


def test_owner_notification_escapes_fields():
    html = render_owner_notification(
        "<script>x</script>", "a@b.co", 'He said "hi" & left'
    )

    assert "<script>" not in html
    assert "&lt;script&gt;x&lt;/script&gt;" in html
    assert "He said &quot;hi&quot; &amp; left" in html
    assert "a@b.co" in html


def test_owner_notification_handles_missing_fields():
    html = render_owner_notification(None, None, None)
    assert "<strong>Name:</strong> </p>" in html


def test_sender_reply_greeting_falls_back():
    assert "Hi there," in render_sender_reply("")
    assert "Hi Jane," in render_sender_reply("Jane")


def test_mask_email():
    assert mask_email("john@example.com") == "jo***@example.com"
    assert mask_email("j@example.com") == "j***@example.com"
    assert mask_email("no-at-sign") == "***"
    assert mask_email("") == "***"
    assert mask_email(None) == "***"
