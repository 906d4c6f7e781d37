"""
Property-Based Tests for the incident lifecycle and responder membership

Random interleavings of respond and resolve calls from the creator, an
admin and bystanders must keep the lifecycle one-way and the responder
list free of duplicates and of the creator.
"""

import asyncio
import tempfile
from contextlib import contextmanager
from pathlib import Path

from hypothesis import HealthCheck, given, settings, strategies as st

from nearhelp.core.database import DatabaseManager
from nearhelp.core.errors import ForbiddenError, NearHelpError, NotFoundError
from nearhelp.models.user import Role

from tests.base import build_services, insert_user


@contextmanager
def temp_services():
    """Fresh database and wiring for a single example"""
    with tempfile.TemporaryDirectory() as temp_dir:
        db = DatabaseManager(str(Path(temp_dir) / "nearhelp.db"))
        try:
            yield build_services(db)
        finally:
            db.close()


# Actor 0 is the creator, 1 is an admin, the rest are bystanders
operation = st.tuples(
    st.sampled_from(["respond", "resolve"]),
    st.integers(min_value=0, max_value=3),
    st.booleans()
)


async def run_operations(services, operations):
    creator = insert_user(services.users, "Creator")
    admin = insert_user(services.users, "Admin", role=Role.ADMIN)
    bystanders = [insert_user(services.users, f"Bystander {i}") for i in range(2)]
    actors = [creator, admin] + bystanders

    snapshot = await services.incidents.create(creator, "medical", 30.7415, 76.7681, 1000)
    history = [snapshot]

    for action, actor_index, with_location in operations:
        actor = actors[actor_index]
        before = services.incident_repository.get(snapshot['id'])
        try:
            if action == "respond":
                lat, lng = (30.74, 76.77) if with_location else (None, None)
                result = await services.incidents.respond(actor, snapshot['id'], lat, lng)
            else:
                result = await services.incidents.resolve(actor, snapshot['id'])
        except NotFoundError:
            assert before.status.value != "active"
            continue
        except ForbiddenError:
            assert before.status.value == "active"
            continue
        history.append(result)

    await services.runner.drain(timeout=2.0)
    return creator, history


class TestIncidentLifecycleProperties:

    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(operations=st.lists(operation, max_size=12))
    def test_lifecycle_is_one_way(self, operations):
        """Once an incident leaves active it never changes again"""
        with temp_services() as services:
            _, history = asyncio.run(run_operations(services, operations))

            statuses = [snapshot['status'] for snapshot in history]
            closed = [i for i, status in enumerate(statuses) if status != "active"]
            assert len(closed) <= 1
            if closed:
                assert closed[0] == len(statuses) - 1

            final = services.incident_repository.get(history[0]['id'])
            assert final.status.value == statuses[-1]
            if final.status.value == "resolved":
                assert final.resolved_at is not None
            else:
                assert final.resolved_at is None

    @settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(operations=st.lists(operation, max_size=12))
    def test_responders_unique_and_exclude_creator(self, operations):
        with temp_services() as services:
            creator, history = asyncio.run(run_operations(services, operations))

            responder_ids = [[r['id'] for r in snapshot['responders']] for snapshot in history]
            for snapshot, ids in zip(history, responder_ids):
                assert len(ids) == len(set(ids))
                assert creator.user_id not in ids
                located = [loc['responderId'] for loc in snapshot['responderLocations']]
                assert len(located) == len(set(located))
                assert set(located) <= set(ids)

            # responders only grow
            for earlier, later in zip(responder_ids, responder_ids[1:]):
                assert earlier == later[:len(earlier)]

    @settings(max_examples=20, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(responder_count=st.integers(min_value=1, max_value=6))
    def test_concurrent_joins_are_all_recorded(self, responder_count):
        """Parallel responds on one incident never lose a responder"""
        async def scenario(services):
            creator = insert_user(services.users, "Creator")
            responders = [insert_user(services.users, f"Responder {i}") for i in range(responder_count)]
            snapshot = await services.incidents.create(creator, "gas_leak", 30.0, 76.0, 500)

            results = await asyncio.gather(
                *(services.incidents.respond(r, snapshot['id']) for r in responders),
                return_exceptions=True
            )
            await services.runner.drain(timeout=2.0)
            assert not [r for r in results if isinstance(r, NearHelpError)]
            return snapshot['id'], responders

        with temp_services() as services:
            incident_id, responders = asyncio.run(scenario(services))

            stored = services.incident_repository.get(incident_id)
            assert sorted(stored.responders) == sorted(r.user_id for r in responders)
            assert stored.version == 1 + responder_count
