from smtp_relay.prometheus import RelayMetrics


def test_processed_counter_is_keyed_by_sender_and_code():
    metrics = RelayMetrics()

    metrics.inc_processed("compras", 200)
    metrics.inc_processed("compras", 200)
    metrics.inc_processed(None, 500)

    sample = metrics.registry.get_sample_value
    assert sample("email_service_emails_processed_total", {"sender": "compras", "code": "200"}) == 2.0
    assert sample("email_service_emails_processed_total", {"sender": "default", "code": "500"}) == 1.0

    output = metrics.generate_latest()
    assert b"email_service_emails_processed_total" in output
    assert b"Total number of emails processed" in output


def test_registries_are_isolated():
    first, second = RelayMetrics(), RelayMetrics()
    first.inc_processed("a", 200)
    assert second.registry.get_sample_value(
        "email_service_emails_processed_total", {"sender": "a", "code": "200"}
    ) is None
