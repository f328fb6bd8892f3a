from concurrent.futures import ThreadPoolExecutor

from fhir_broker.services.events.event_log import EventLog
from fhir_broker.services.identity.identity_ledger import IdentityLedger


def test_register_creates_canonical_patient(identity_ledger: IdentityLedger) -> None:
    broker_id = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")

    assert broker_id.startswith("broker-")
    assert identity_ledger.resolve("mercy-1") == broker_id
    record = identity_ledger.get(broker_id)
    assert record is not None
    assert record.name == "Alice Smith"
    assert record.birth_date == "1987-04-12"


def test_register_links_second_source_to_same_patient(identity_ledger: IdentityLedger) -> None:
    first = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")
    second = identity_ledger.register("valley-7", "alice smith", "1987-04-12")

    assert first == second
    assert len(identity_ledger.records()) == 1
    assert {link.local_id for link in identity_ledger.links()} == {"mercy-1", "valley-7"}


def test_register_is_idempotent(identity_ledger: IdentityLedger, event_log: EventLog) -> None:
    first = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")
    second = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")

    assert first == second
    assert len(identity_ledger.records()) == 1
    assert len(identity_ledger.links()) == 1
    assert len(event_log.of_type("patient-registered")) == 1
    assert len(event_log.of_type("patient-linked")) == 1


def test_register_different_birth_date_creates_new_patient(
    identity_ledger: IdentityLedger,
) -> None:
    first = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")
    second = identity_ledger.register("mercy-2", "Alice Smith", "1990-01-01")

    assert first != second
    assert len(identity_ledger.records()) == 2


def test_resolve_unknown_local_id(identity_ledger: IdentityLedger) -> None:
    assert identity_ledger.resolve("unknown") is None


def test_match_by_traits(identity_ledger: IdentityLedger) -> None:
    broker_id = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")

    matched = identity_ledger.match_by_traits("SMITH", ["alice"], "1987-04-12")
    assert matched is not None
    assert matched.id == broker_id
    assert identity_ledger.match_by_traits("Smith", ["Alicia"], "1987-04-12") is None
    assert identity_ledger.match_by_traits("Smith", [], "1987-04-12") is None


def test_register_ignores_middle_names(identity_ledger: IdentityLedger) -> None:
    first = identity_ledger.register("mercy-1", "Alice Smith", "1987-04-12")
    second = identity_ledger.register("mercy-2", "Alice Marie Smith", "1987-04-12")

    assert first == second
    matched = identity_ledger.match_by_demographics("Alice Jo Smith", "1987-04-12")
    assert matched is not None
    assert matched.id == first
    assert matched.name == "Alice Smith"


def test_concurrent_registration_of_same_person_yields_one_patient(
    identity_ledger: IdentityLedger,
) -> None:
    with ThreadPoolExecutor(max_workers=8) as executor:
        ids = list(
            executor.map(
                lambda i: identity_ledger.register(f"source-{i}", "Alice Smith", "1987-04-12"),
                range(32),
            )
        )

    assert len(set(ids)) == 1
    assert len(identity_ledger.records()) == 1
    assert len(identity_ledger.links()) == 32
