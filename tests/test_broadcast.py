import threading

from powchain.broadcast import BroadcastManager


def test_unknown_packet_not_seen():
    assert BroadcastManager().has_packet(3) is False


def test_added_packet_is_seen():
    manager = BroadcastManager()
    manager.add_packet(3)
    assert manager.has_packet(3) is True
    assert manager.has_packet(4) is False


def test_adding_twice_keeps_it_seen():
    manager = BroadcastManager()
    manager.add_packet(1)
    manager.add_packet(1)
    assert manager.has_packet(1) is True


def test_concurrent_adds():
    manager = BroadcastManager()
    threads = [threading.Thread(target=manager.add_packet, args=(i,)) for i in range(50)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert all(manager.has_packet(i) for i in range(50))
    assert manager.has_packet(50) is False