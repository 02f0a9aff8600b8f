from anyio import create_task_group, sleep
from os import environ, pathsep
from pathlib import Path
from pytest import mark, raises
from subprocess import run
from sys import executable
from textwrap import dedent
from threading import Event, current_thread

from aiojanitor.utils.concurrency import (
    Spawner,
    TaskGroupSpawner,
    ThreadSpawner,
    create_spawner,
)


class TestThreadSpawner:
    def test_sync_function(self):
        done = Event()
        threads = []

        def func():
            threads.append(current_thread())
            done.set()

        thread = ThreadSpawner().spawn(func)

        assert done.wait(5)
        assert threads == [thread]
        assert not thread.daemon
        assert thread.name.startswith("aiojanitor-worker-")

    def test_coroutine_function(self):
        done = Event()

        async def func():
            await sleep(0)
            done.set()

        ThreadSpawner().spawn(func)

        assert done.wait(5)

    def test_awaitable(self):
        done = Event()

        async def func():
            await sleep(0)
            done.set()

        ThreadSpawner().spawn(func())

        assert done.wait(5)

    def test_error_handler(self):
        errors = []
        reported = Event()

        def on_error(error):
            errors.append(error)
            reported.set()

        def func():
            raise ValueError("test")

        thread = ThreadSpawner(daemon=True, name="custom").spawn(func, on_error)
        thread.join(5)

        assert reported.is_set()
        assert isinstance(errors[0], ValueError)
        assert thread.daemon
        assert thread.name.startswith("custom-")

    def test_error_in_awaitable(self):
        errors = []

        async def func():
            raise ValueError("test")

        ThreadSpawner().spawn(func, errors.append).join(5)

        assert isinstance(errors[0], ValueError)

    def test_interpreter_waits_for_work_at_exit(self, tmp_path):
        output = tmp_path / "done.txt"
        script = dedent(
            """
            import sys
            from anyio import sleep
            from aiojanitor import ResourceTracker

            async def write():
                await sleep(0.2)
                with open(sys.argv[1], "w") as fp:
                    fp.write("done")

            tracker = ResourceTracker()
            tracker.add(write)
            tracker.destroy()
            """
        )

        src = str(Path(__file__).resolve().parent.parent / "src")
        env = dict(environ)
        env["PYTHONPATH"] = pathsep.join(filter(None, [src, env.get("PYTHONPATH")]))

        result = run([executable, "-c", script, str(output)], env=env, timeout=30)

        assert result.returncode == 0
        assert output.read_text() == "done"


class TestTaskGroupSpawner:
    @mark.anyio
    async def test_spawn(self):
        log, errors = [], []

        async def func():
            await sleep(0)
            log.append("async")

        async def failing():
            raise ValueError("test")

        async with create_task_group() as task_group:
            spawner = TaskGroupSpawner(task_group)
            assert spawner.task_group is task_group

            spawner.spawn(func, errors.append)
            spawner.spawn(lambda: log.append("sync"), errors.append)
            spawner.spawn(failing, errors.append)
            spawner.spawn(func(), errors.append)

        assert sorted(log) == ["async", "async", "sync"]
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    def test_base_class(self):
        with raises(NotImplementedError):
            Spawner().spawn(print)


class TestCreateSpawner:
    def test_default(self):
        assert isinstance(create_spawner(), ThreadSpawner)
        assert isinstance(create_spawner(None), ThreadSpawner)

    def test_existing_spawner(self):
        spawner = ThreadSpawner()
        assert create_spawner(spawner) is spawner

    def test_duck_typed_task_group(self):
        class Nursery:
            def start_soon(self, func, *args):
                pass

        nursery = Nursery()
        spawner = create_spawner(nursery)
        assert isinstance(spawner, TaskGroupSpawner)
        assert spawner.task_group is nursery

    @mark.anyio
    async def test_task_group(self):
        async with create_task_group() as task_group:
            assert isinstance(create_spawner(task_group), TaskGroupSpawner)

    def test_invalid(self):
        with raises(TypeError):
            create_spawner(42)
