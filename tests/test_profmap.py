from profship.profmap import ProfMap


def test_lookup_returns_same_entry():
    m = ProfMap()
    a = m.lookup([1, 2, 3], 0)
    b = m.lookup((1, 2, 3), 0)
    assert a is b
    assert len(m) == 1


def test_new_entry_starts_at_zero():
    m = ProfMap()
    e = m.lookup([10, 20], 5)
    assert (e.v1, e.v2) == (0, 0)
    assert e.stk == (10, 20)
    assert e.tag == 5


def test_tag_distinguishes_entries():
    m = ProfMap()
    a = m.lookup([1, 2], 0)
    b = m.lookup([1, 2], 64)
    assert a is not b
    assert len(m) == 2


def test_stack_distinguishes_entries():
    m = ProfMap()
    a = m.lookup([1, 2], 0)
    b = m.lookup([2, 1], 0)
    c = m.lookup([1, 2, 0], 0)
    assert len({id(a), id(b), id(c)}) == 3


def test_counts_persist_between_lookups():
    m = ProfMap()
    e = m.lookup([7], 0)
    e.v1 = 11
    e.v2 = 22
    again = m.lookup([7], 0)
    assert (again.v1, again.v2) == (11, 22)


def test_iteration_in_insertion_order():
    m = ProfMap()
    stacks = [[3], [1], [2]]
    for s in stacks:
        m.lookup(s, 0)
    m.lookup([1], 0)
    assert [e.stk for e in m] == [tuple(s) for s in stacks]


def test_stack_copy_is_independent():
    m = ProfMap()
    stk = [1, 2]
    e = m.lookup(stk, 0)
    stk.append(3)
    assert e.stk == (1, 2)
    assert m.lookup([1, 2], 0) is e