def test_labeled_native_loops(get_module):
    code = """
    def f():
        found = []
        outer: for i in range(3):
            for j in range(3):
                if j == 1:
                    continue outer
                if i == 2:
                    break outer
                found.append((i, j))
        return found
    """
    assert get_module(code).f() == [(0, 0), (1, 0)]


def test_labeled_while(get_module):
    code = """
    def f():
        n = 0
        outer: while True:
            while True:
                n += 1
                if n < 3:
                    continue outer
                break outer
        return n
    """
    assert get_module(code).f() == 3


def test_innermost_label_is_native_jump(get_module):
    code = """
    def f():
        out = []
        loop: for i in range(5):
            if i == 1:
                continue loop
            if i == 3:
                break loop
            out.append(i)
        return out
    """
    assert get_module(code).f() == [0, 2]


def test_label_jump_passes_except_exception(get_module):
    code = """
    def f():
        outer: for i in range(3):
            for j in range(3):
                try:
                    break outer
                except Exception:
                    return "caught"
        return "escaped"
    """
    assert get_module(code).f() == "escaped"


def test_loop_else_is_skipped_by_labeled_break(get_module):
    code = """
    def f():
        log = []
        outer: for i in range(2):
            for j in range(2):
                break outer
            else:
                log.append("inner else")
        else:
            log.append("outer else")
        return log
    """
    assert get_module(code).f() == []


def test_block(get_module):
    code = """
    def classify(x):
        check: block as kind:
            if x < 0:
                break check with "negative"
            if x == 0:
                break check with "zero"
        return kind
    """
    module = get_module(code)
    assert module.classify(-3) == "negative"
    assert module.classify(0) == "zero"
    assert module.classify(5) is None


def test_block_without_value(get_module):
    code = """
    def f(x):
        log = []
        done: block:
            log.append(1)
            if x:
                break done
            log.append(2)
        log.append(3)
        return log
    """
    module = get_module(code)
    assert module.f(True) == [1, 3]
    assert module.f(False) == [1, 2, 3]


def test_break_block_from_loop(get_module):
    code = """
    def find(items, target):
        search: block as index:
            for i, item in enumerate(items):
                if item == target:
                    break search with i
            break search with -1
        return index
    """
    module = get_module(code)
    assert module.find("abc", "b") == 1
    assert module.find("abc", "z") == -1


def test_module_level_block(get_module):
    code = """
    b: block as value:
        break b with 42
    """
    assert get_module(code).value == 42


def test_external_break_to_native_loop(get_module):
    code = """
    def find(grid, target):
        pos = None
        rows: for r in range(len(grid)):
            cbit for c in up_to(len(grid[r])) break rows:
                if grid[r][c] == target:
                    pos = (r, c)
                    break rows
        return pos
    """
    module = get_module(code)
    assert module.find([[1, 2], [3, 4]], 4) == (1, 1)
    assert module.find([[1, 2], [3, 4]], 5) is None


def test_external_break_stops_outer_loop(get_module):
    code = """
    def f(seen):
        visited = []
        rows: for r in range(3):
            visited.append(r)
            cbit for c in tracked([0, 1, 2], seen) break rows:
                if r == 1 and c == 1:
                    break rows
        return visited
    """
    seen = []
    assert get_module(code).f(seen) == [0, 1]
    assert seen == [0, 1, 2, 0, 1]


def test_external_break_to_block_with_value(get_module):
    code = """
    def f(items):
        found: block as where:
            cbit for x in each(items) break found:
                if x < 0:
                    break found with ("negative", x)
            break found with "none"
        return where
    """
    module = get_module(code)
    assert module.f([1, -2, 3]) == ("negative", -2)
    assert module.f([1, 2]) == "none"


def test_external_loop_continue(get_module):
    code = """
    def total(grid, seen):
        acc = 0
        rows: for row in grid:
            cbit for x in tracked(row, seen) break loop rows:
                if x < 0:
                    continue rows
                acc += x
            acc += 1000
        return acc
    """
    seen = []
    assert get_module(code).total([[1, 2], [3, -1, 100], [4]], seen) == 2010
    assert seen == [1, 2, 3, -1, 4]


def test_external_jump_from_nested_native_loop(get_module):
    code = """
    def f():
        out = []
        rows: for r in range(3):
            cbit for x in up_to(3) break loop rows:
                for y in range(3):
                    if y == 1:
                        continue rows
                    out.append((r, x, y))
        return out
    """
    assert get_module(code).f() == [(0, 0, 0), (1, 0, 0), (2, 0, 0)]


def test_several_external_labels(get_module):
    code = """
    def f(action):
        log = []
        outer: for i in range(2):
            b: block as v:
                cbit for x in up_to(5) break loop outer, b:
                    if x == 1:
                        if action == "continue":
                            continue outer
                        if action == "break":
                            break outer
                        if action == "block":
                            break b with x
                log.append(("done", i))
            log.append(("after block", i, v))
        return log
    """
    module = get_module(code)
    assert module.f("continue") == []
    assert module.f("break") == []
    assert module.f("block") == [("after block", 0, 1), ("after block", 1, 1)]
    assert module.f(None) == [
        ("done", 0),
        ("after block", 0, None),
        ("done", 1),
        ("after block", 1, None),
    ]


def test_sibling_expansions_with_same_label(get_module):
    code = """
    def f():
        log = []
        rows: for r in range(2):
            cbit for x in up_to(3) break rows:
                if x == 1:
                    break rows
                log.append(("first", r, x))
        rows: for r in range(2):
            cbit for x in up_to(3) break loop rows:
                if x == 1:
                    continue rows
                log.append(("second", r, x))
        return log
    """
    assert get_module(code).f() == [("first", 0, 0), ("second", 0, 0), ("second", 1, 0)]


def test_labels_are_scoped_per_function(get_module):
    code = """
    def a():
        outer: for i in range(3):
            cbit for x in up_to(3) break outer:
                break outer
        return i

    def b():
        outer: for i in range(3):
            cbit for x in up_to(3) break loop outer:
                continue outer
        return i
    """
    module = get_module(code)
    assert module.a() == 0
    assert module.b() == 2
