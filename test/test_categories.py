from anyio import CancelScope, create_task_group
from concurrent.futures import Future
from functools import partial
from pytest import mark, raises

from aiojanitor.categories import (
    Category,
    categorize,
    find_category,
    find_method,
    iter_children,
)
from aiojanitor.errors import UnsupportedResourceKind

from fakes import FakeListener, FakeObject, FakeStream, FakeSubscription


def function():
    pass


async def coroutine_function():
    pass


class CallableWithDestroy:
    def __call__(self):
        pass

    def destroy(self):
        pass


class ObjectWithBothMethods:
    def destroy(self):
        pass

    def disconnect(self):
        pass


class ContainerWithDisconnect(dict):
    def disconnect(self):
        pass


class TestCategorize:
    @mark.parametrize(
        "item",
        [function, coroutine_function, lambda: None, partial(print, "x"), print],
    )
    def test_deferred(self, item):
        assert categorize(item) is Category.DEFERRED

    def test_bound_method_is_deferred(self):
        assert categorize(FakeObject().destroy) is Category.DEFERRED

    def test_futures(self):
        assert categorize(Future()) is Category.TASK

    @mark.anyio
    async def test_cancel_scopes(self):
        assert categorize(CancelScope()) is Category.TASK

    @mark.anyio
    async def test_task_groups(self):
        async with create_task_group() as task_group:
            assert categorize(task_group) is Category.TASK

    def test_owned_objects(self):
        assert categorize(FakeObject()) is Category.OBJECT
        assert categorize(FakeStream()) is Category.OBJECT

    def test_subscriptions(self):
        assert categorize(FakeSubscription()) is Category.SUBSCRIPTION
        assert categorize(FakeListener()) is Category.SUBSCRIPTION

    @mark.parametrize(
        "item", [[], (), {"a": 1}, {1, 2}, frozenset(), [FakeObject()]]
    )
    def test_groups(self, item):
        assert categorize(item) is Category.GROUP

    def test_precedence(self):
        assert categorize(CallableWithDestroy()) is Category.DEFERRED
        assert categorize(ObjectWithBothMethods()) is Category.OBJECT
        assert categorize(ContainerWithDisconnect()) is Category.SUBSCRIPTION

    @mark.parametrize(
        "item", [None, 42, 3.5, True, "text", b"bytes", bytearray(), object()]
    )
    def test_unsupported(self, item):
        assert find_category(item) is None
        with raises(UnsupportedResourceKind) as info:
            categorize(item)
        assert info.value.item is item

    def test_classes_are_unsupported(self):
        assert find_category(FakeObject) is None
        with raises(UnsupportedResourceKind):
            categorize(FakeObject)

    def test_description(self):
        assert Category.DEFERRED.description == "deferred callable"
        assert Category.GROUP.description == "resource group"
        assert all(category.description for category in Category)


def test_find_method():
    stream = FakeStream()
    assert find_method(stream, ("destroy", "close")) == stream.close
    assert find_method(stream, ("destroy", "dispose")) is None

    obj = FakeObject()
    obj.close = 42
    assert find_method(obj, ("close", "destroy")) == obj.destroy


def test_iter_children():
    obj = FakeObject()
    assert iter_children({"a": obj, "b": 2}) == [obj, 2]
    assert iter_children([obj, 2]) == [obj, 2]
    assert iter_children((obj,)) == [obj]
