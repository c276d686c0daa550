"""
单元测试：计数器对账

测试覆盖：
- 中继重启（计数下降）后累计值不回退
- 首次观测
- 多次重启、多个中继互不影响
- 启动回放与连续运行结果一致
- 偏移量只在 publish 后对读取方可见
"""

import random

from conftest import make_status
from relay_monitor.reconciler import CounterReconciler, RelayHistory


class TestReconcile:
    """reconcile 测试"""

    def test_reset_sequence(self, reconciler):
        """测试：200 -> 40 之间发生重启"""
        raw = [100, 150, 200, 40, 90]
        adjusted = [reconciler.reconcile("r1", make_status(v)) for v in raw]
        assert adjusted == [100, 150, 200, 240, 290]

    def test_first_observation_equals_raw(self, reconciler):
        """测试：首次观测偏移为 0"""
        assert reconciler.reconcile("r1", make_status(12345)) == 12345
        assert reconciler.history("r1") == RelayHistory(base_offset=0, last_observed=12345)

    def test_equal_value_is_not_reset(self, reconciler):
        """测试：数值不变不算重启"""
        reconciler.reconcile("r1", make_status(500))
        assert reconciler.reconcile("r1", make_status(500)) == 500
        assert reconciler.history("r1").base_offset == 0

    def test_multiple_resets_accumulate(self, reconciler):
        """测试：连续重启时偏移量累加每个周期的最后值"""
        adjusted = [reconciler.reconcile("r1", make_status(v)) for v in [100, 10, 5, 0, 7]]
        assert adjusted == [100, 110, 115, 115, 122]
        assert reconciler.history("r1") == RelayHistory(base_offset=115, last_observed=7)

    def test_relays_are_independent(self, reconciler):
        """测试：不同中继状态独立"""
        reconciler.reconcile("a", make_status(1000))
        reconciler.reconcile("b", make_status(10))
        assert reconciler.reconcile("a", make_status(1)) == 1001
        assert reconciler.reconcile("b", make_status(20)) == 20

    def test_adjusted_never_decreases(self):
        """测试：任意原始序列下累计值单调不减"""
        rng = random.Random(20240101)
        for _ in range(200):
            reconciler = CounterReconciler()
            previous = 0
            for _ in range(30):
                value = rng.randint(0, 10_000)
                adjusted = reconciler.reconcile("r", make_status(value))
                assert adjusted >= previous
                previous = adjusted

    def test_reconcile_all(self, reconciler):
        """测试：一轮结果批量对账"""
        result = reconciler.reconcile_all({"a": make_status(5), "b": make_status(7)})
        assert result == {"a": 5, "b": 7}

    def test_history_is_a_copy(self, reconciler):
        """测试：history 返回副本，修改不影响内部状态"""
        reconciler.reconcile("r1", make_status(10))
        copy = reconciler.history("r1")
        copy.base_offset = 999
        assert reconciler.history("r1").base_offset == 0
        assert reconciler.history("unknown") is None


class TestPublish:
    """发布状态测试"""

    def test_offset_hidden_until_publish(self, reconciler):
        """测试：publish 前读取方看不到新偏移"""
        reconciler.reconcile("r1", make_status(200))
        reconciler.reconcile("r1", make_status(40))
        assert reconciler.base_offset("r1") == 0

        reconciler.publish()
        assert reconciler.base_offset("r1") == 200
        assert reconciler.adjusted("r1", 40) == 240

    def test_unknown_relay_has_zero_offset(self, reconciler):
        assert reconciler.base_offset("nope") == 0
        assert reconciler.adjusted("nope", 77) == 77

    def test_lookup_does_not_mutate(self, reconciler):
        """测试：读取时不做重置检测"""
        reconciler.reconcile("r1", make_status(500))
        reconciler.publish()
        # 用一个更小的原始值查询不会被当作重启
        assert reconciler.adjusted("r1", 100) == 100
        assert reconciler.history("r1") == RelayHistory(base_offset=0, last_observed=500)


class TestReplay:
    """启动回放测试"""

    def test_replay_matches_continuous_run(self, store):
        """测试：回放历史快照得到与连续运行相同的状态"""
        rng = random.Random(7)
        continuous = CounterReconciler()

        counters = {"a:1": 0, "b:2": 0, "c:3": 0}
        for cycle in range(40):
            entries = {}
            for relay in counters:
                if rng.random() < 0.15:
                    # 本轮没有响应
                    continue
                if rng.random() < 0.1:
                    counters[relay] = rng.randint(0, 50)  # 重启
                else:
                    counters[relay] += rng.randint(0, 1000)
                entries[relay] = make_status(counters[relay])

            continuous.reconcile_all(entries)
            store.append(f"2026-01-01T00:{cycle // 60:02d}:{cycle % 60:02d}.000000Z", entries)
        continuous.publish()

        restored = CounterReconciler()
        count = restored.replay(store.all_in_order())

        assert count == 40
        assert restored.histories() == continuous.histories()
        for relay in counters:
            assert restored.base_offset(relay) == continuous.base_offset(relay)

    def test_replay_empty_store(self, store, reconciler):
        """测试：空存储回放"""
        assert reconciler.replay(store.all_in_order()) == 0
        assert reconciler.histories() == {}
