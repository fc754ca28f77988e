from sqlalchemy import func, select

from stockledger.app.db.models.models_v1 import Tenant, User, Warehouse
from stockledger.app.db.seed import run_seed


def test_seed_is_idempotent(db_session):
    first = run_seed(db_session)
    second = run_seed(db_session)

    assert first.id == second.id
    for model in (Tenant, User, Warehouse):
        assert db_session.execute(select(func.count(model.id))).scalar_one() == 1
