from courier.models import OrderStatus, OutboxKind, OutboxTask
from courier.orchestrator import RetryOutcome
from courier.services import Services


def test_empty_outbox(services):
    assert services.outbox_processor.process() == 0


def test_cms_retry_succeeds(services, cms, durable, events, order_payload):
    cms.fail = True
    out = services.orchestrator.create_order(order_payload)
    cms.fail = False
    events.clear()

    assert services.outbox_processor.process() == 1

    assert len(services.outbox) == 0
    assert services.store.get_order(out.order_id).cms_order_id == f"CMS-{out.order_id}"
    assert durable.get_order(out.order_id).cms_order_id == f"CMS-{out.order_id}"
    assert [e.type for e in events] == ["ORDER_UPDATED"]


def test_failed_retry_goes_back_with_one_more_attempt(services, cms, order_payload):
    cms.fail = True
    services.orchestrator.create_order(order_payload)

    services.outbox_processor.process()

    [task] = services.outbox.pending()
    assert task.kind == OutboxKind.CMS_REGISTER
    assert task.attempts == 1


def test_gives_up_after_max_attempts(durable, cms, wms, ros, order_payload, caplog):
    services = Services(durable=durable, cms=cms, wms=wms, ros=ros, outbox_max_attempts=2)
    cms.fail = True
    services.orchestrator.create_order(order_payload)

    services.outbox_processor.process()
    assert len(services.outbox) == 1
    services.outbox_processor.process()

    assert len(services.outbox) == 0
    assert "giving up on CMS_REGISTER" in caplog.text


def test_task_for_unknown_order_is_dropped(services):
    services.outbox.enqueue(OutboxTask(kind=OutboxKind.ROS_PLAN, order_id="ORD-ghost"))

    assert services.orchestrator.retry(OutboxTask(kind=OutboxKind.ROS_PLAN, order_id="ORD-ghost")) == RetryOutcome.DROPPED
    assert services.outbox_processor.process() == 1
    assert len(services.outbox) == 0


def test_full_recovery_after_outage(services, cms, wms, ros, events, order_payload):
    cms.fail = wms.fail = ros.fail = True
    out = services.orchestrator.create_order(order_payload)
    cms.fail = wms.fail = ros.fail = False
    events.clear()

    services.outbox_processor.process()

    order = services.store.get_order(out.order_id)
    assert order.status == OrderStatus.ROUTED
    assert order.cms_order_id
    assert order.packages[0].id.startswith("WMS-")
    assert services.store.get_route(order.route_id) is not None
    assert [e.type for e in events] == [
        "ORDER_UPDATED",
        "ORDER_UPDATED",
        "ORDER_UPDATED",
        "ROUTE_UPDATED",
        "ROUTE_ASSIGNED",
    ]


def test_late_wms_does_not_replace_routed_packages(services, wms, order_payload):
    wms.fail = True
    out = services.orchestrator.create_order(order_payload)
    before = services.store.get_order(out.order_id).packages
    wms.fail = False

    services.outbox_processor.process()

    assert len(wms.calls) == 1
    assert services.store.get_order(out.order_id).packages == before


def test_ros_retry_skipped_once_routed(services, ros, order_payload):
    out = services.orchestrator.create_order(order_payload)
    task = OutboxTask(kind=OutboxKind.ROS_PLAN, order_id=out.order_id)

    assert services.orchestrator.retry(task) == RetryOutcome.DONE
    assert len(ros.calls) == 1


def test_duplicate_tasks_are_harmless(services, cms, order_payload):
    cms.fail = True
    out = services.orchestrator.create_order(order_payload)
    services.outbox.enqueue(OutboxTask(kind=OutboxKind.CMS_REGISTER, order_id=out.order_id))
    cms.fail = False

    assert services.outbox_processor.process() == 2

    assert len(cms.calls) == 2
    assert len(services.outbox) == 0
