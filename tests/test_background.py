import asyncio

from relay.services.background import BackgroundWriter


class TestBackgroundWriter:
    def test_submitted_jobs_run(self):
        done = []

        async def scenario():
            writer = BackgroundWriter(workers=2)
            for index in range(5):

                async def job(index=index):
                    done.append(index)

                assert writer.submit(job, description=f"job {index}") is True
            await writer.drain()
            await writer.stop()

        asyncio.run(scenario())
        assert sorted(done) == [0, 1, 2, 3, 4]

    def test_failing_job_does_not_stop_workers(self):
        done = []

        async def broken():
            raise RuntimeError("boom")

        async def fine():
            done.append("ok")

        async def scenario():
            writer = BackgroundWriter(workers=1)
            writer.submit(broken)
            writer.submit(fine)
            await writer.drain()
            await writer.stop()

        asyncio.run(scenario())
        assert done == ["ok"]

    def test_full_queue_drops_job(self):
        async def scenario():
            gate = asyncio.Event()
            writer = BackgroundWriter(workers=1, max_pending=1)

            async def blocked():
                await gate.wait()

            async def noop():
                return None

            writer.submit(blocked)
            await asyncio.sleep(0)
            accepted = writer.submit(noop)
            dropped = writer.submit(noop)
            gate.set()
            await writer.stop()
            return accepted, dropped

        assert asyncio.run(scenario()) == (True, False)

    def test_submit_without_loop_is_dropped(self):
        async def job():
            return None

        writer = BackgroundWriter()
        assert writer.submit(job) is False
        assert writer.running is False

    def test_restarts_on_new_event_loop(self):
        done = []
        writer = BackgroundWriter(workers=1)

        async def scenario(tag):
            async def job():
                done.append(tag)

            writer.submit(job)
            await writer.drain()

        asyncio.run(scenario("first"))
        asyncio.run(scenario("second"))
        assert done == ["first", "second"]

    def test_stop_is_idempotent(self):
        async def scenario():
            writer = BackgroundWriter()
            await writer.start()
            assert writer.running is True
            await writer.stop()
            await writer.stop()
            return writer.running

        assert asyncio.run(scenario()) is False
