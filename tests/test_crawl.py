import unittest
from unittest import mock

import requests
from sqlalchemy.exc import DataError, OperationalError

from jobportal.config import Settings
from jobportal.core.errors import FetchError
from jobportal.crawler.fetch import Fetcher, RetryPolicy
from jobportal.crawler.run import RandomDelay, crawl, run_crawl
from jobportal.crawler.store import CatalogWriter
from jobportal.db import crud
from jobportal.db.models import Base, Job
from jobportal.db.session import make_engine, make_session_factory
from tests.html_fixtures import StubFetcher, listing_block, results_page

SITE = "https://www.saramin.co.kr"


class CrawlTests(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite://")
        Base.metadata.create_all(self.engine)
        self.Session = make_session_factory(self.engine)
        self.delays = []

    def tearDown(self):
        self.engine.dispose()

    def _crawl(self, fetcher, keyword="backend", target=10, **kwargs):
        with self.Session() as session:
            return crawl(session, fetcher, keyword, target, delay=lambda: self.delays.append(1), **kwargs)

    def test_backend_scenario_stops_after_first_page(self):
        fetcher = StubFetcher({
            1: results_page(
                listing_block(company="Acme", title="Backend A", href="/a/1"),
                listing_block(company="Beta", title="Backend B", href="/a/2"),
            ),
        })
        summary = self._crawl(fetcher, target=2)

        self.assertEqual(fetcher.calls, [("backend", 1)])
        self.assertEqual(summary.new_jobs, 2)
        self.assertEqual(summary.duplicates, 0)
        self.assertEqual(summary.new_companies, 2)
        self.assertEqual(self.delays, [])
        with self.Session() as session:
            self.assertEqual(crud.count_jobs(session), 2)
            self.assertEqual(crud.count_companies(session), 2)

    def test_target_cuts_a_page_short(self):
        fetcher = StubFetcher({
            1: results_page(*(listing_block(href=f"/a/{n}") for n in range(5))),
        })
        summary = self._crawl(fetcher, target=3)
        self.assertEqual(summary.new_jobs, 3)
        with self.Session() as session:
            self.assertEqual(crud.count_jobs(session), 3)

    def test_existing_link_is_left_unchanged(self):
        with self.Session() as session:
            company = crud.create_company(session, "Acme")
            crud.create_job(session, company.id, {"link": f"{SITE}/a/1", "title": "Original", "salary": "3000"})

        fetcher = StubFetcher({
            1: results_page(
                listing_block(title="Changed", href="/a/1", salary="9999"),
                listing_block(title="Fresh", href="/a/2"),
            ),
            2: results_page(),
        })
        summary = self._crawl(fetcher)

        self.assertEqual(summary.new_jobs, 1)
        self.assertEqual(summary.duplicates, 1)
        self.assertEqual(summary.saved_links, [f"{SITE}/a/2"])
        with self.Session() as session:
            self.assertEqual(session.query(Job).filter_by(link=f"{SITE}/a/1").count(), 1)
            job = crud.get_job_by_link(session, f"{SITE}/a/1")
            self.assertEqual(job.title, "Original")
            self.assertEqual(job.salary, "3000")

    def test_listings_sharing_a_company_create_it_once(self):
        fetcher = StubFetcher({
            1: results_page(*(listing_block(company="Acme", href=f"/a/{n}") for n in range(3))),
            2: results_page(),
        })
        summary = self._crawl(fetcher)

        self.assertEqual(summary.new_companies, 1)
        with self.Session() as session:
            self.assertEqual(crud.count_companies(session), 1)
            company_ids = {job.company_id for job in session.query(Job).all()}
            self.assertEqual(len(company_ids), 1)

    def test_empty_page_ends_the_run(self):
        fetcher = StubFetcher({
            1: results_page(listing_block(href="/a/1"), listing_block(href="/a/2")),
            2: results_page(listing_block(href="/a/3")),
            3: results_page(),
        })
        summary = self._crawl(fetcher, target=50)

        self.assertEqual(summary.pages_fetched, 3)
        self.assertEqual(summary.new_jobs, 3)
        # one wait between each pair of fetches
        self.assertEqual(len(self.delays), 2)

    def test_page_limit(self):
        fetcher = StubFetcher({
            1: results_page(listing_block(href="/a/1")),
            2: results_page(listing_block(href="/a/2")),
        })
        summary = self._crawl(fetcher, max_pages=1)

        self.assertEqual(fetcher.calls, [("backend", 1)])
        self.assertEqual(summary.new_jobs, 1)
        self.assertEqual(self.delays, [])

    def test_bad_listing_is_skipped(self):
        fetcher = StubFetcher({
            1: results_page(
                listing_block(title="No link", href=None),
                listing_block(title="Good", href="/a/2"),
            ),
            2: results_page(),
        })
        with self.assertLogs("jobportal.crawler.run", level="WARNING") as logs:
            summary = self._crawl(fetcher)

        self.assertEqual(summary.failed_listings, 1)
        self.assertEqual(summary.new_jobs, 1)
        self.assertTrue(any("No link" in line for line in logs.output))

    def test_fetch_failure_rolls_back_the_whole_run(self):
        page_one = results_page(listing_block(href="/a/1"), listing_block(company="Beta", href="/a/2"))

        def fake_get(url, headers=None, timeout=None):
            if url.endswith("recruitPage=1"):
                resp = requests.Response()
                resp.status_code = 200
                resp._content = page_one.encode("utf-8")
                resp.encoding = "utf-8"
                return resp
            raise requests.ConnectionError("network unreachable")

        http = mock.Mock()
        http.get.side_effect = fake_get
        sleeps = []
        fetcher = Fetcher(session=http, retry=RetryPolicy(sleep=sleeps.append))

        with self.assertRaises(FetchError) as ctx:
            self._crawl(fetcher)

        self.assertEqual(ctx.exception.attempts, 4)
        self.assertEqual(sleeps, [1.0, 2.0, 3.0])
        with self.Session() as session:
            self.assertEqual(crud.count_jobs(session), 0)
            self.assertEqual(crud.count_companies(session), 0)

    def test_lost_store_connection_is_fatal(self):
        fetcher = StubFetcher({1: results_page(listing_block(href="/a/1"))})
        lost = OperationalError("INSERT INTO jobs ...", {}, Exception("server closed the connection"))
        with mock.patch("jobportal.crawler.run.CatalogWriter.save", side_effect=lost):
            with self.assertRaises(OperationalError):
                self._crawl(fetcher)

    def test_store_error_on_one_listing_keeps_the_rest(self):
        fetcher = StubFetcher({
            1: results_page(
                listing_block(company="Acme", title="First", href="/a/1"),
                listing_block(company="Beta", title="Broken", href="/a/2"),
                listing_block(company="Gamma", title="Third", href="/a/3"),
            ),
            2: results_page(),
        })
        real_link_exists = crud.link_exists

        def link_exists(session, link):
            if link.endswith("/a/2"):
                raise DataError("SELECT jobs.id FROM jobs", {}, Exception("invalid byte sequence"))
            return real_link_exists(session, link)

        with mock.patch("jobportal.db.crud.link_exists", side_effect=link_exists):
            summary = self._crawl(fetcher)

        self.assertEqual(summary.failed_listings, 1)
        self.assertEqual(summary.new_jobs, 2)
        with self.Session() as session:
            links = sorted(job.link for job in session.query(Job).all())
            self.assertEqual(links, [f"{SITE}/a/1", f"{SITE}/a/3"])
            self.assertEqual(crud.count_companies(session), 2)

    def test_unexpected_listing_error_rolls_back_the_run(self):
        fetcher = StubFetcher({
            1: results_page(listing_block(href="/a/1"), listing_block(company="Beta", href="/a/2")),
        })
        real_save = CatalogWriter.save
        calls = []

        def save(writer, listing):
            calls.append(listing.link)
            if len(calls) == 2:
                raise TypeError("bad field type")
            return real_save(writer, listing)

        with mock.patch.object(CatalogWriter, "save", autospec=True, side_effect=save):
            with self.assertRaises(TypeError):
                self._crawl(fetcher)

        with self.Session() as session:
            self.assertEqual(crud.count_jobs(session), 0)

    def test_target_must_be_positive(self):
        with self.assertRaises(ValueError):
            self._crawl(StubFetcher({}), target=0)


class RandomDelayTests(unittest.TestCase):
    def test_sleeps_within_range(self):
        slept = []
        delay = RandomDelay(2.0, 5.0, sleep=slept.append, uniform=lambda lo, hi: (lo + hi) / 2)
        self.assertEqual(delay(), 3.5)
        self.assertEqual(slept, [3.5])


class RunCrawlTests(unittest.TestCase):
    def test_creates_schema_and_leaves_borrowed_engine_open(self):
        engine = make_engine("sqlite://")
        try:
            fetcher = StubFetcher({
                1: results_page(listing_block(href="/a/1")),
                2: results_page(),
            })
            settings = Settings(database_url="sqlite://", min_delay=0.0, max_delay=0.0)
            summary = run_crawl(
                "backend", 5, settings=settings, engine=engine, fetcher=fetcher, create_schema=True,
            )
            self.assertEqual(summary.new_jobs, 1)
            with make_session_factory(engine)() as session:
                self.assertEqual(crud.count_jobs(session), 1)
        finally:
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
