import random

import seed_data
from models import MustGoRequest, RequestLog, User
from role_policy import Role


def test_seed_creates_users_and_requests(ctx):
    random.seed(7)
    seed_data.seed(count=4)

    assert User.query.count() == 1 + len(seed_data.ROLE_USERS)
    assert User.query.filter_by(email=seed_data.DEFAULT_ADMIN["email"]).one().role == Role.ADMIN
    assert MustGoRequest.query.count() == 4
    for request in MustGoRequest.query.all():
        assert request.part_details
        assert RequestLog.query.filter_by(request_id=request.id).count() >= 1


def test_seed_is_rerunnable_and_clear_resets(ctx):
    seed_data.seed(count=1)
    seed_data.seed(count=1)
    assert User.query.count() == 1 + len(seed_data.ROLE_USERS)
    assert MustGoRequest.query.count() == 2

    seed_data.seed(count=1, clear=True)
    assert MustGoRequest.query.count() == 1


def test_generated_payload_has_distinct_trailers():
    for _ in range(50):
        payload = seed_data.generate_payload()
        numbers = [t["trailerNumber"] for t in payload["trailers"]]
        assert len(numbers) == len(set(numbers))
        assert all(part["quantity"] % 24 == 0 for t in payload["trailers"] for part in t["parts"])
