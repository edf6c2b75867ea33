from canteen.services.order_feed import ChangeKind, OrderFeed


def test_publish_notifies_every_subscriber_with_increasing_revision():
    feed = OrderFeed()
    seen_a, seen_b = [], []
    feed.subscribe(seen_a.append)
    feed.subscribe(seen_b.append)

    feed.publish(ChangeKind.INSERT, "o1")
    feed.publish(ChangeKind.UPDATE, "o1")

    assert [(c.kind, c.order_id, c.revision) for c in seen_a] == [
        (ChangeKind.INSERT, "o1", 1),
        (ChangeKind.UPDATE, "o1", 2),
    ]
    assert seen_b == seen_a
    assert feed.revision == 2


def test_unsubscribe_stops_delivery():
    feed = OrderFeed()
    seen = []
    subscription = feed.subscribe(seen.append)

    feed.publish(ChangeKind.INSERT, "o1")
    subscription.unsubscribe()
    feed.publish(ChangeKind.DELETE, "o1")

    assert [change.kind for change in seen] == [ChangeKind.INSERT]


def test_failing_subscriber_does_not_block_others():
    from canteen.observability import metrics_store

    feed = OrderFeed()
    seen = []

    def _broken(_change):
        raise RuntimeError("boom")

    feed.subscribe(_broken)
    feed.subscribe(seen.append)

    change = feed.publish(ChangeKind.INSERT, "o1")

    assert seen == [change]
    assert metrics_store.snapshot().counters["order_change_subscriber_errors_total"] == 1


def test_reset_drops_subscribers_and_revision():
    feed = OrderFeed()
    seen = []
    feed.subscribe(seen.append)
    feed.publish(ChangeKind.INSERT, "o1")

    feed.reset()
    change = feed.publish(ChangeKind.INSERT, "o2")

    assert change.revision == 1
    assert len(seen) == 1
