import csv
import io

import pytest

from crm_console.services.base import RecordNotFound, ValidationFailed


@pytest.fixture
def terms_service(services):
    return services.terms


@pytest.fixture
def msa(terms_service):
    return terms_service.create_terms({'name': 'MSA', 'content': 'Net 30.', 'is_default': True})


def test_create_requires_name_and_content(terms_service):
    with pytest.raises(ValidationFailed) as exc:
        terms_service.create_terms({'name': ' ', 'content': ''})
    assert exc.value.errors == ["Name is required", "Content is required"]


def test_only_one_default(terms_service, msa):
    other = terms_service.create_terms({'name': 'Enterprise', 'content': 'Net 60.', 'is_default': True})

    assert terms_service.get_terms(msa.id).is_default is False
    assert terms_service.default_terms().id == other.id

    terms_service.update_terms(msa.id, {'is_default': True})
    assert terms_service.get_terms(other.id).is_default is False
    assert terms_service.default_terms().id == msa.id


def test_update_and_delete(terms_service, msa):
    updated = terms_service.update_terms(msa.id, {'content': 'Net 45.'})
    assert updated.content == 'Net 45.'
    assert updated.name == 'MSA'

    terms_service.delete_terms(msa.id)
    with pytest.raises(RecordNotFound):
        terms_service.get_terms(msa.id)


def test_send_for_review(terms_service, msa):
    request = terms_service.send_for_review(
        msa.id, ' Buyer@Example.com ', sender_name='Sam Seller', recipient_name='Bo Buyer',
    )

    assert request.id
    assert request.status == 'pending'
    assert request.recipient_email == 'buyer@example.com'
    assert request.terms_name == 'MSA'
    assert request.sent_at
    assert len(request.review_token) >= 32
    assert terms_service.review_url(request.review_token) == (
        f"https://console.example.com/terms/review/{request.review_token}"
    )


def test_send_requires_valid_email_and_terms(terms_service, msa):
    with pytest.raises(ValidationFailed):
        terms_service.send_for_review(msa.id, 'not-an-email')
    with pytest.raises(RecordNotFound):
        terms_service.send_for_review('missing', 'a@b.com')


def test_review_lifecycle(terms_service, msa):
    token = terms_service.send_for_review(msa.id, 'buyer@example.com').review_token

    request, terms = terms_service.open_review(token)
    assert request.status == 'viewed'
    assert request.viewed_at
    assert terms.content == 'Net 30.'

    # Re-opening does not move viewed_at
    again, _ = terms_service.open_review(token)
    assert again.viewed_at == request.viewed_at

    answered = terms_service.respond(token, 'approve', notes=' Looks good ', signer_name='Bo Buyer')
    assert answered.status == 'approved'
    assert answered.responded_at
    assert answered.response_notes == 'Looks good'
    assert answered.signer_name == 'Bo Buyer'

    with pytest.raises(ValidationFailed, match='already been responded'):
        terms_service.respond(token, 'reject')

    # Opening an answered review leaves its status alone
    request, _ = terms_service.open_review(token)
    assert request.status == 'approved'


def test_respond_rejects_unknown_action_and_token(terms_service, msa):
    token = terms_service.send_for_review(msa.id, 'buyer@example.com').review_token
    with pytest.raises(ValidationFailed):
        terms_service.respond(token, 'maybe')
    with pytest.raises(RecordNotFound):
        terms_service.respond('bad-token', 'approve')


def test_ledger_filters_and_csv(terms_service, msa):
    first = terms_service.send_for_review(msa.id, 'ann@acme.com', sender_name='Sam')
    terms_service.send_for_review(msa.id, 'bob@globex.com', sender_email='ops@console.example.com')
    terms_service.respond(first.review_token, 'reject', notes='Needs "net 60"')

    assert len(terms_service.ledger()) == 2
    assert [r.recipient_email for r in terms_service.ledger(q='ACME')] == ['ann@acme.com']
    assert [r.recipient_email for r in terms_service.ledger(status='pending')] == ['bob@globex.com']
    ordered = terms_service.ledger(sort='recipient_email', direction='asc')
    assert [r.recipient_email for r in ordered] == ['ann@acme.com', 'bob@globex.com']

    text = terms_service.ledger_csv(ordered)
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == terms_service.LEDGER_CSV_HEADERS
    assert rows[1][:5] == ['MSA', 'ann@acme.com', '', 'Sam', 'rejected']
    assert rows[1][8] == 'Needs "net 60"'
    assert rows[2][3] == 'ops@console.example.com'
    assert text.startswith('"Terms","Recipient Email"')
