"""
Test Continuum Memory System
Verify memory timescales, forgetting cadence and consolidation
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import torch

from nested_learning.exceptions import InvalidArgumentError
from nested_learning.memory import ContinuumMemorySystem, MemoryModule, MemoryType


def test_memory_types():
    assert [t.update_frequency for t in MemoryType] == [1.0, 0.1, 0.01, 0.001]
    assert MemoryType.LONG_TERM.description == "long-term memory"
    assert MemoryType.from_frequency(0.09) is MemoryType.MEDIUM_TERM
    assert MemoryType.from_frequency(5.0) is MemoryType.SHORT_TERM
    assert MemoryType.from_frequency(0.0) is MemoryType.ULTRA_LONG_TERM
    print("✓ Memory timescales")


def test_module_cadence_and_forgetting():
    """Module fires on its own interval and prunes unsurprising entries"""
    print("\n" + "-" * 70)
    print("TEST 1: Memory module")
    print("-" * 70)

    module = MemoryModule(MemoryType.MEDIUM_TERM, capacity=10, forgetting_rate=1.0,
                          surprise_threshold=0.5)
    assert module.update_frequency == 0.1

    # Never updated: fires immediately
    assert module.should_update(3)
    assert module.update(3)
    assert not module.should_update(5)
    assert module.should_update(10)
    print("✓ Fires on first call, then every 10 steps")

    novel = torch.tensor([1.0, 0.0])
    redundant = torch.tensor([1.0, 0.05])
    assert module.store(novel, torch.tensor([1.0]))
    assert module.store(redundant, torch.tensor([2.0]))
    assert module.size == 2

    # Prune threshold = 0.5 * 1.0
    assert not module.update(11)
    assert module.update(20)
    assert module.size == 1
    assert novel in module.memory and redundant not in module.memory
    print("✓ Forgetting prunes below threshold * forgetting_rate")

    module.enable_forgetting = False
    module.store(redundant, torch.tensor([2.0]))
    module.update(30)
    assert module.size == 2

    module.clear()
    assert module.size == 0 and module.last_update_step == -1


def test_store_and_retrieve():
    cms = ContinuumMemorySystem()
    assert [m.capacity for m in cms.get_all_modules()] == [50, 100, 200, 500]
    assert cms.retrieve(torch.ones(2)) is None

    k1, v1 = torch.tensor([1.0, 0.0]), torch.tensor([1.0])
    k2, v2 = torch.tensor([0.0, 1.0]), torch.tensor([2.0])
    assert cms.store(k1, v1, MemoryType.LONG_TERM)
    assert cms.store(k2, v2)

    assert cms.get_memory_module(MemoryType.SHORT_TERM).size == 1
    assert cms.get_memory_module("long_term").size == 1

    # Fast to slow: short-term answers first
    assert cms.retrieve(torch.tensor([1.0, 0.0])) is v2
    assert cms.retrieve(torch.tensor([1.0, 0.0]), MemoryType.LONG_TERM) is v1
    assert cms.retrieve(None) is None
    print("✓ Store / retrieve across timescales")

    with pytest.raises(InvalidArgumentError):
        cms.get_memory_module("episodic")
    print("✓ Unknown memory type rejected")


def test_consolidation():
    """Unsurprising short-term entries move one level down"""
    print("\n" + "-" * 70)
    print("TEST 2: Consolidation")
    print("-" * 70)

    cms = ContinuumMemorySystem(consolidation_threshold=0.3)
    short = cms.get_memory_module(MemoryType.SHORT_TERM)
    medium = cms.get_memory_module(MemoryType.MEDIUM_TERM)
    long_term = cms.get_memory_module(MemoryType.LONG_TERM)

    first = torch.tensor([1.0, 0.0])
    stable = torch.tensor([1.0, 0.1])
    cms.store(first, torch.tensor([1.0]))   # surprise 1.0
    cms.store(stable, torch.tensor([2.0]))  # surprise ~0.005

    moved = cms.consolidate()
    assert moved == 1
    assert stable in medium.memory and first not in medium.memory
    # Lands in an empty medium store with surprise 1.0: stays there
    assert long_term.size == 0
    assert short.size == 2
    print("✓ Stable entry consolidated short -> medium")

    # Already present in the target
    assert cms.consolidate() == 0


def test_update_schedule():
    cms = ContinuumMemorySystem(consolidation_interval=100)
    cms.update(1)
    assert cms.last_consolidation_step == 1
    cms.update(50)
    assert cms.last_consolidation_step == 1
    cms.update(101)
    assert cms.last_consolidation_step == 101
    print("✓ Consolidates on first update, then every interval")

    cms.consolidation_interval = 0
    assert cms.consolidation_interval == 1

    cms.enable_auto_consolidation = False
    cms.update(500)
    assert cms.last_consolidation_step == 101


def test_average_surprise_and_stats():
    cms = ContinuumMemorySystem(type_capacities={"SHORT_TERM": 4, MemoryType.MEDIUM_TERM: 8})
    key = torch.tensor([1.0, 0.0])
    assert cms.compute_average_surprise(key) == 1.0

    cms.store(torch.tensor([1.0, 0.0]), torch.ones(1))
    assert abs(cms.compute_average_surprise(key)) < 1e-6

    cms.store(torch.tensor([0.0, 1.0]), torch.ones(1), MemoryType.MEDIUM_TERM)
    assert abs(cms.compute_average_surprise(key) - 0.5) < 1e-6
    print("✓ Average surprise over non-empty modules")

    stats = cms.get_stats()
    assert stats['short_term_size'] == 1
    assert stats['short_term_capacity'] == 4
    assert stats['short_term_fill'] == 0.25
    assert stats['long_term_capacity'] == 100
    assert stats['last_consolidation_step'] == -1

    cms.clear()
    assert all(m.size == 0 for m in cms.get_all_modules())
    print("✓ Stats and clear")


if __name__ == "__main__":
    print("=" * 70)
    print("Testing Continuum Memory System")
    print("=" * 70)
    try:
        test_memory_types()
        test_module_cadence_and_forgetting()
        test_store_and_retrieve()
        test_consolidation()
        test_update_schedule()
        test_average_surprise_and_stats()

        print("\n" + "=" * 70)
        print("✅ ALL CONTINUUM MEMORY TESTS PASSED")
        print("=" * 70)
    except Exception as e:
        print(f"\n❌ TEST FAILED: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
