import unittest

import pytest

from litewire import ErrorCode, InjectionError, Injector, create, map_invoke


def test_injector_registers_itself_case_insensitive_and_prefixed():
    foo = Injector("foo")

    def check(di, DI, fooDi, foo_di, FOODI):  # noqa: N803
        return [di, DI, fooDi, foo_di, FOODI]

    assert all(injected is foo for injected in foo(check))


def test_create_builds_injector():
    parent = create("parent")
    child = create("child", parent)

    assert isinstance(child, Injector)
    assert child.get_import_names() == ["parent"]


def test_register_value():
    foo = Injector("foo")

    def service():
        return 1

    assert foo.get("service") is None
    foo.register("service").value(service)
    assert foo.get("service") is service


@pytest.mark.parametrize("requested", ["value", "VALUE", "VaLuE", "va_lue"])
def test_resolution_is_case_insensitive(requested):
    foo = Injector("foo")
    foo.register("Value").value(123)

    assert foo.get(requested) == 123


def test_prefixed_lookup_returns_same_entry():
    app = Injector("app")
    entry = object()
    app.register("x").value(entry)

    assert app.get("x") is entry
    assert app.get("appx") is entry
    assert app.get("APP_X") is entry


def test_later_registration_answers_prefixed_name():
    app = Injector("app")
    app.register("appx").value("registered as appx")
    app.register("x").value("registered as x")

    assert app.get("appx") == "registered as x"
    assert app.get("appappx") == "registered as appx"

    app.register("appx").value("appx again")
    assert app.get("appx") == "appx again"
    assert app.get("x") == "registered as x"


def test_prefixed_name_respects_visibility_of_the_answering_entry():
    app = Injector("app")
    app.register("appx").value("public appx").public()
    app.register("x").value("private x")
    child = app.new_child("child")

    assert app.get("appx") == "private x"
    assert child.get("appx") == "public appx"


def test_registered_none_is_indistinguishable_from_absence():
    foo = Injector("foo")
    foo.register("nothing").value(None)

    assert foo.get("nothing") is None
    with pytest.raises(InjectionError):
        foo(lambda nothing: nothing)


def test_invoke_is_call_alias():
    foo = Injector("foo")
    foo.register("value").value(3)

    def double(value):
        return value * 2

    assert foo.invoke(double) == foo(double) == 6


def test_map_invoke_collects_results_in_order():
    foo = Injector("foo")
    bar = Injector("bar")
    foo.register("value").value(1)
    bar.register("value").value(2)

    result = map_invoke([foo, bar], lambda value: value)

    assert result == [1, 2]


class TestFactories(unittest.TestCase):
    foo: Injector

    def setUp(self):
        self.foo = Injector("foo")
        self.calls = 0

    def test_factory_runs_once_and_gets_its_own_dependencies(self):
        def service(foo_value, value):
            self.calls += 1
            return foo_value + value

        self.foo.register("value").value(123)
        self.foo.register("service").factory(service)

        assert self.calls == 0
        assert self.foo.get("service") == 246
        assert self.foo.get("service") == 246
        assert self.foo.get("fooService") == 246
        assert self.calls == 1

    def test_register_factory_get_resolves_immediately(self):
        def service(value):
            self.calls += 1
            return value + 1

        self.foo.register("value").value(1)
        result = self.foo.register("service").factory(service).get()

        assert self.calls == 1
        assert result == 2

    def test_factory_returning_none_runs_once(self):
        def service():
            self.calls += 1

        self.foo.register("service").factory(service)

        assert self.foo.get("service") is None
        assert self.foo.get("service") is None
        assert self.calls == 1

    def test_failed_factory_is_retried_after_missing_dependency_is_registered(self):
        errors = []
        self.foo.register("service").factory(lambda late: late * 2)

        assert self.foo.get("service", on_error=errors.append) is None
        assert errors[0].code is ErrorCode.DEPENDENCY_NOT_FOUND

        self.foo.register("late").value(21)
        assert self.foo.get("service") == 42

    def test_factory_depending_on_itself_reports_missing_dependency(self):
        errors = []
        self.foo.register("loop").factory(lambda loop: loop)

        assert self.foo.get("loop", on_error=errors.append) is None
        assert len(errors) == 1
        assert errors[0].code is ErrorCode.DEPENDENCY_NOT_FOUND
        assert '"loop"' in errors[0].message

        with pytest.raises(InjectionError):
            self.foo.get("loop")

    def test_factory_is_not_run_on_registration(self):
        def service():
            self.calls += 1
            return "svc"

        self.foo.register("service").factory(service).public()

        assert self.calls == 0
        assert self.foo.require("service") == "svc"

    def test_factory_using_default_after_nested_failure_runs_once(self):
        errors = []

        def service(dep=5):
            self.calls += 1
            return dep

        self.foo.register("dep").factory(lambda missing: missing)
        self.foo.register("service").factory(service)

        assert self.foo.get("service", on_error=errors.append) == 5
        assert self.foo.get("service", on_error=errors.append) == 5
        assert self.calls == 1
        # only the broken "dep" factory reported, once
        assert len(errors) == 1
        assert '"missing"' in errors[0].message

    def test_factory_resolved_from_later_import_runs_once(self):
        errors = []
        broken = Injector("broken")
        broken.register("conf").factory(lambda missing: missing).public()
        working = Injector("working")
        working.register("conf").value("ok").public()
        child = Injector("child", [broken, working])

        def service(conf):
            self.calls += 1
            return conf

        child.register("service").factory(service)

        assert child.get("service", on_error=errors.append) == "ok"
        assert child.get("service", on_error=errors.append) == "ok"
        assert self.calls == 1
        assert [error.code for error in errors] == [ErrorCode.DEPENDENCY_NOT_FOUND]


class TestInvoke(unittest.TestCase):
    foo: Injector

    def setUp(self):
        self.foo = Injector("foo")

    def test_custom_injections_override_registry(self):
        self.foo.register("value").value("registered")

        def check(di, value, v_null, v_false):
            return di, value, v_null, v_false

        di, value, v_null, v_false = self.foo(check, {"value": 1, "v_null": None, "v_false": False})

        assert di is self.foo
        assert value == 1
        assert v_false is False
        # an explicit None override is passed, not reported as missing
        assert v_null is None

    def test_omitted_override_falls_back_to_lookup(self):
        errors = []

        def check(present, p):
            return present, p

        result = self.foo(check, {"present": 1}, errors.append)

        assert result is None
        assert errors[0].code is ErrorCode.DEPENDENCY_NOT_FOUND
        assert '"p"' in errors[0].message

    def test_missing_dependencies_listed_in_declaration_order(self):
        self.foo.register("a").value(1)

        with pytest.raises(InjectionError) as ctx:
            self.foo(lambda z, a, b: None)

        assert ctx.value.code is ErrorCode.DEPENDENCY_NOT_FOUND
        assert 'could not inject "z, b"' in str(ctx.value)

    def test_unresolved_parameter_uses_default(self):
        self.foo.register("host").value("localhost")

        def connect(host, port=5555):
            return f"{host}:{port}"

        assert self.foo(connect) == "localhost:5555"

        self.foo.register("port").value(9898)
        assert self.foo(connect) == "localhost:9898"

    def test_keyword_only_and_positional_only_parameters(self):
        self.foo.register("a").value(1)
        self.foo.register("b").value(2)
        self.foo.register("c").value(3)

        def fn(a, /, b, *, c):
            return a, b, c

        assert self.foo(fn) == (1, 2, 3)

    def test_variadic_parameters_are_not_injected(self):
        self.foo.register("value").value(7)

        def fn(value, *args, **kwargs):
            return value, args, kwargs

        assert self.foo(fn) == (7, (), {})

    def test_classes_are_invoked_with_injected_arguments(self):
        class Repo:
            def __init__(self, db):
                self.db = db

        self.foo.register("db").value("sqlite")

        assert self.foo(Repo).db == "sqlite"

    def test_callback_resolves_when_called(self):
        deferred = self.foo.callback(lambda late: late + 1)

        self.foo.register("late").value(1)

        assert deferred() == 2

    def test_callback_reports_to_its_error_callback(self):
        errors = []
        deferred = self.foo.callback(lambda missing: missing, None, errors.append)

        assert deferred() is None
        assert errors[0].code is ErrorCode.DEPENDENCY_NOT_FOUND

        with pytest.raises(InjectionError):
            self.foo.callback(lambda missing: missing)()

    def test_require(self):
        errors = []

        assert self.foo.require("fail", errors.append) is None
        assert isinstance(errors[0], InjectionError)

        with pytest.raises(InjectionError):
            self.foo.require("fail")

        assert self.foo.require("di") is self.foo
