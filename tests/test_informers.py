import logging

from sdnnet.api import HostSubnet, NetNamespace
from sdnnet.informers import DeletedFinalStateUnknown, EventType, informer_funcs


class Recorder:
    def __init__(self):
        self.updates = []
        self.deletes = []

    def add_or_update(self, obj, old, event_type):
        self.updates.append((obj, old, event_type))

    def delete(self, obj):
        self.deletes.append(obj)


def make():
    rec = Recorder()
    return rec, informer_funcs(HostSubnet, rec.add_or_update, rec.delete)


def test_add_passes_added_event():
    rec, handlers = make()
    hs = HostSubnet(host="node-1")
    handlers.on_add(hs)
    assert rec.updates == [(hs, None, EventType.ADDED)]


def test_update_passes_current_then_old():
    rec, handlers = make()
    old = HostSubnet(host="node-1", host_ip="10.0.0.1")
    cur = HostSubnet(host="node-1", host_ip="10.0.0.2")
    handlers.on_update(old, cur)
    assert rec.updates == [(cur, old, EventType.MODIFIED)]


def test_delete_matching_type():
    rec, handlers = make()
    hs = HostSubnet(host="node-1")
    handlers.on_delete(hs)
    assert rec.deletes == [hs]


def test_delete_unwraps_tombstone():
    rec, handlers = make()
    hs = HostSubnet(host="node-1")
    handlers.on_delete(DeletedFinalStateUnknown(key="node-1", obj=hs))
    assert rec.deletes == [hs]


def test_delete_wrong_type_is_ignored(caplog):
    rec, handlers = make()
    with caplog.at_level(logging.ERROR):
        handlers.on_delete(NetNamespace(net_id=42))
    assert rec.deletes == []
    assert "Couldn't get object from tombstone" in caplog.text


def test_delete_tombstone_with_wrong_type_is_ignored(caplog):
    rec, handlers = make()
    with caplog.at_level(logging.ERROR):
        handlers.on_delete(DeletedFinalStateUnknown(key="ns", obj=NetNamespace(net_id=42)))
    assert rec.deletes == []
    assert "Tombstone contained object" in caplog.text


def test_missing_callbacks_leave_handlers_unset():
    handlers = informer_funcs(HostSubnet, None, None)
    assert (handlers.on_add, handlers.on_update, handlers.on_delete) == (None, None, None)


def test_only_delete_callback():
    rec = Recorder()
    handlers = informer_funcs(HostSubnet, None, rec.delete)
    assert handlers.on_add is None
    hs = HostSubnet(host="node-2")
    handlers.on_delete(hs)
    assert rec.deletes == [hs]