from datetime import datetime, timedelta, timezone
import unittest

from ldap_conformance.cleanup import (
    CleanupResult,
    cleanup_older_than,
    delete_subtree,
    find_test_roots,
    list_test_data,
    make_test_root_dn,
    parse_test_root_time,
    perform_cleanup,
    roots_filter,
)
from ldap_conformance.exceptions import DirectoryError, ResultCode
from ldap_conformance.tracker import EntryKind, Tracker

from .fakes import BASE_DN, FakeServer

ROOT = f"ou=ldap-test-20250101-120000,{BASE_DN}"


class CleanupMixin:

    def setUp(self):
        self.server = FakeServer()
        self.conn = self.server.connection().open()
        self.tracker = Tracker()
        self.create(ROOT, EntryKind.CONTAINER, {"objectClass": ["organizationalUnit"]})
        self.create(f"ou=test-ou,{ROOT}", EntryKind.CONTAINER, {"objectClass": ["organizationalUnit"]})
        self.create(f"cn=testuser,{ROOT}", EntryKind.PRINCIPAL, {"objectClass": ["person"]})
        self.create(f"cn=testgroup,{ROOT}", EntryKind.GROUP, {"objectClass": ["groupOfNames"]})

    def create(self, dn, kind, attributes):
        self.server.load(dn, attributes)
        self.tracker.track(dn, kind)


class TestPerformCleanup(CleanupMixin, unittest.TestCase):

    def test_deletes_everything_newest_first(self):
        result = perform_cleanup(self.conn, self.tracker)
        self.assertTrue(result.ok)
        self.assertEqual(
            result.deleted,
            [f"cn=testgroup,{ROOT}", f"cn=testuser,{ROOT}", f"ou=test-ou,{ROOT}", ROOT],
        )
        self.assertFalse(self.server.exists(ROOT))

    def test_does_not_change_tracker(self):
        perform_cleanup(self.conn, self.tracker)
        self.assertEqual(self.tracker.count(), 4)

    def test_partial_failure_still_attempts_every_entry(self):
        self.server.fail("delete", ResultCode.INSUFFICIENT_ACCESS, dn=f"cn=testuser,{ROOT}")
        result = perform_cleanup(self.conn, self.tracker)
        self.assertFalse(result.ok)
        self.assertEqual(result.attempted, 4)
        self.assertEqual(len(self.server.calls_for("delete")), 4)
        failed = dict(result.failed)
        self.assertEqual(failed[f"cn=testuser,{ROOT}"].code, ResultCode.INSUFFICIENT_ACCESS)
        # The root still has the user in it
        self.assertEqual(failed[ROOT].code, ResultCode.NOT_ALLOWED_ON_NONLEAF)
        self.assertEqual(result.deleted, [f"cn=testgroup,{ROOT}", f"ou=test-ou,{ROOT}"])

    def test_errors_counts_every_failed_delete(self):
        self.server.fail("delete", ResultCode.INSUFFICIENT_ACCESS, dn=f"cn=testgroup,{ROOT}")
        self.server.fail("delete", ResultCode.NO_SUCH_OBJECT, dn=f"ou=test-ou,{ROOT}")
        self.server.fail("delete", ResultCode.BUSY, dn=ROOT)
        result = perform_cleanup(self.conn, self.tracker)
        self.assertEqual(len(self.server.calls_for("delete")), 4)
        self.assertEqual(result.errors, 3)
        self.assertEqual(result.deleted, [f"cn=testuser,{ROOT}"])

    def test_already_gone_is_missing_not_failed(self):
        self.tracker.track(f"cn=rename-test-user,{ROOT}", EntryKind.PRINCIPAL)
        self.server.load(f"cn=renamed-user,{ROOT}", {"objectClass": ["person"]})
        self.tracker.track(f"cn=renamed-user,{ROOT}", EntryKind.PRINCIPAL)
        result = perform_cleanup(self.conn, self.tracker)
        self.assertTrue(result.ok)
        self.assertEqual(result.missing, [f"cn=rename-test-user,{ROOT}"])
        self.assertIn(f"cn=renamed-user,{ROOT}", result.deleted)

    def test_duplicate_entries_are_deleted_once(self):
        self.tracker.track(f"CN=testgroup,{ROOT}", EntryKind.GROUP)
        result = perform_cleanup(self.conn, self.tracker)
        self.assertEqual(len(self.server.calls_for("delete")), 4)
        self.assertEqual(result.missing, [])

    def test_empty_tracker(self):
        result = perform_cleanup(self.conn, Tracker())
        self.assertEqual(result.attempted, 0)
        self.assertTrue(result.ok)


class TestCleanupResult_merge(unittest.TestCase):

    def test_merge(self):
        one = CleanupResult(deleted=["a"], missing=["b"])
        error = DirectoryError("delete", ResultCode.BUSY)
        two = CleanupResult(deleted=["c"], failed=[("d", error)])
        one.merge(two)
        self.assertEqual(one.deleted, ["a", "c"])
        self.assertEqual(one.attempted, 4)
        self.assertFalse(one.ok)


class TestTestRootNames(unittest.TestCase):

    def setUp(self):
        self.when = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_make_test_root_dn(self):
        self.assertEqual(
            make_test_root_dn("ldap-test", BASE_DN, self.when),
            "ou=ldap-test-20250102-030405,dc=example,dc=com",
        )

    def test_parse_test_root_time(self):
        self.assertEqual(parse_test_root_time("ldap-test-20250102-030405", "ldap-test"), self.when)

    def test_parse_rejects_other_prefix(self):
        self.assertIsNone(parse_test_root_time("other-20250102-030405", "ldap-test"))

    def test_parse_rejects_bad_timestamp(self):
        self.assertIsNone(parse_test_root_time("ldap-test-yesterday", "ldap-test"))

    def test_roots_filter(self):
        filterstr = roots_filter("ldap-test")
        self.assertTrue(filterstr.startswith("(&"))
        self.assertIn("(objectClass=organizationalUnit)", filterstr)
        self.assertIn("(ou=ldap-test-*)", filterstr)


class RetentionMixin:

    def setUp(self):
        self.server = FakeServer()
        self.conn = self.server.connection().open()
        now = datetime.now(timezone.utc)
        self.old = make_test_root_dn("ldap-test", BASE_DN, now - timedelta(days=3))
        self.older = make_test_root_dn("ldap-test", BASE_DN, now - timedelta(days=10))
        self.new = make_test_root_dn("ldap-test", BASE_DN, now)
        for dn in (self.old, self.older, self.new):
            ou = dn.split(",", 1)[0][3:]
            self.server.load(dn, {"objectClass": ["organizationalUnit"], "ou": [ou]})
            self.server.load(f"ou=test-ou,{dn}", {"objectClass": ["organizationalUnit"], "ou": ["test-ou"]})
            self.server.load(f"cn=testuser,ou=test-ou,{dn}", {"objectClass": ["person"], "cn": ["testuser"]})
        self.server.load(
            f"ou=ldap-test-undated,{BASE_DN}",
            {"objectClass": ["organizationalUnit"], "ou": ["ldap-test-undated"]},
        )
        self.server.load(
            f"ou=people,{BASE_DN}", {"objectClass": ["organizationalUnit"], "ou": ["people"]}
        )


class TestFindTestRoots(RetentionMixin, unittest.TestCase):

    def test_finds_dated_roots_oldest_first(self):
        roots = find_test_roots(self.conn, BASE_DN, "ldap-test")
        self.assertEqual([root.dn for root in roots], [self.older, self.old, self.new])

    def test_list_test_data_counts_entries(self):
        listing = list_test_data(self.conn, BASE_DN, "ldap-test")
        self.assertEqual(len(listing), 3)
        self.assertEqual([size for _, size in listing], [3, 3, 3])


class TestDeleteSubtree(RetentionMixin, unittest.TestCase):

    def test_deepest_first(self):
        result = delete_subtree(self.conn, self.old)
        self.assertEqual(
            result.deleted,
            [f"cn=testuser,ou=test-ou,{self.old}", f"ou=test-ou,{self.old}", self.old],
        )
        self.assertTrue(result.ok)


class TestCleanupOlderThan(RetentionMixin, unittest.TestCase):

    def test_removes_only_old_roots(self):
        result = cleanup_older_than(self.conn, BASE_DN, "ldap-test", timedelta(days=1))
        self.assertTrue(result.ok)
        self.assertEqual(len(result.deleted), 6)
        self.assertFalse(self.server.exists(self.old))
        self.assertFalse(self.server.exists(self.older))
        self.assertTrue(self.server.exists(self.new))
        self.assertTrue(self.server.exists(f"ou=ldap-test-undated,{BASE_DN}"))
        self.assertTrue(self.server.exists(f"ou=people,{BASE_DN}"))

    def test_nothing_old_enough(self):
        result = cleanup_older_than(self.conn, BASE_DN, "ldap-test", timedelta(weeks=4))
        self.assertEqual(result.attempted, 0)

    def test_failure_is_recorded_and_other_roots_continue(self):
        self.server.fail("delete", ResultCode.INSUFFICIENT_ACCESS, dn=self.older)
        result = cleanup_older_than(self.conn, BASE_DN, "ldap-test", timedelta(days=1))
        self.assertFalse(result.ok)
        self.assertEqual([dn for dn, _ in result.failed], [self.older])
        self.assertFalse(self.server.exists(self.old))
