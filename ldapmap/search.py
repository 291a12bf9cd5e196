"""
This module provides the three ways of running a search:

* :py:func:`search` runs a single request and returns every entry it received,
  even if the server stopped at its size limit.
* :py:class:`SearchPaginator` uses the paged results control to read result sets
  that are larger than the server will return in one go.
* :py:class:`StreamingSearchExecutor` hands entries to the caller one at a time,
  without reading the whole result set into memory.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import logging, contextlib

from . import codec, exceptions
from .controls import PagedResults, paged_cookie


_log = logging.getLogger(__name__)


#: The number of entries requested per page by default
DEFAULT_PAGE_SIZE = 500


def _deliver_controls(criteria, controls):
    if criteria.response_callback is not None:
        criteria.response_callback(controls)


def _decode_all(criteria, entries, drop_empty = False):
    decoded = (codec.decode(e, criteria.byte_valued) for e in entries)
    if drop_empty:
        return [e for e in decoded if not codec.is_empty(e)]
    return list(decoded)


def search(transport, conn, criteria):
    """
    Runs a single search and returns the decoded entries.

    If the server stops at the size limit, the entries received up to that point
    are returned rather than raising.

    Args:
        transport: The :py:class:`~.transport.Transport` to use.
        conn: The connection to search on.
        criteria: The :py:class:`~.criteria.SearchCriteria`.

    Returns:
        A list of entry dictionaries.
    """
    _log.debug('Performing LDAP search (base_dn: {}, filter: {})'.format(
        criteria.base, criteria.filter
    ))
    try:
        reply = transport.search(conn, criteria)
    except exceptions.SizeLimitExceededError as e:
        _log.debug('Size limit exceeded, returning {} entries'.format(len(e.entries)))
        _deliver_controls(criteria, e.controls)
        return _decode_all(criteria, e.entries)
    _deliver_controls(criteria, reply.controls)
    return _decode_all(criteria, reply.entries)


class SearchPaginator:
    """
    Reads all the results of a search using the paged results control.

    Each request carries the cookie from the previous reply, and the search is
    complete once the server returns an empty cookie (or no paging control at
    all).

    Args:
        transport: The :py:class:`~.transport.Transport` to use.
        page_size: The number of entries to request per page (optional).
    """
    def __init__(self, transport, page_size = DEFAULT_PAGE_SIZE):
        self._transport = transport
        self._page_size = page_size

    def pages(self, conn, criteria):
        """
        Returns a generator that yields the decoded, non-empty entries of each
        page as a list. Pages are only requested as the generator is consumed.
        """
        cookie = None
        page = 0
        while True:
            page += 1
            request = criteria._replace(
                controls = tuple(criteria.controls) + (PagedResults(self._page_size, cookie), )
            )
            _log.debug('Requesting page {} of search (base_dn: {}, filter: {})'.format(
                page, criteria.base, criteria.filter
            ))
            reply = self._transport.search(conn, request)
            _deliver_controls(criteria, reply.controls)
            yield _decode_all(criteria, reply.entries, drop_empty = True)
            cookie = paged_cookie(reply.controls)
            if not cookie:
                return

    def search_all(self, conn, criteria):
        """
        Returns the decoded, non-empty entries from every page as a single list.
        """
        results = []
        for entries in self.pages(conn, criteria):
            results.extend(entries)
        return results


class StreamingSearchExecutor:
    """
    Runs a search on a connection checked out for the duration of the search,
    handing entries to the caller one at a time.

    The connection is released back to the pool once the search completes, or
    once the caller stops reading. If reading fails, the connection is
    invalidated so that the pool does not reuse it.

    Args:
        transport: The :py:class:`~.transport.Transport` to use.
    """
    def __init__(self, transport):
        self._transport = transport

    def _next_entry(self, source):
        while True:
            try:
                return source.next_entry()
            except exceptions.EntrySourceError as e:
                if not e.may_continue:
                    raise
                _log.debug('Skipping unreadable entry: {}'.format(e))

    def _read(self, conn, criteria):
        with self._transport.open_entry_source(conn, criteria) as source:
            _deliver_controls(criteria, source.response_controls)
            while True:
                entry = self._next_entry(source)
                if entry is None:
                    return
                decoded = codec.decode(entry, criteria.byte_valued)
                if not codec.is_empty(decoded):
                    yield decoded

    def entries(self, criteria):
        """
        Returns a generator of decoded, non-empty entries for the search.

        Closing the generator early (or abandoning it) releases the connection.
        """
        _log.debug('Performing streaming LDAP search (base_dn: {}, filter: {})'.format(
            criteria.base, criteria.filter
        ))
        conn = self._transport.acquire()
        try:
            yield from self._read(conn, criteria)
        except GeneratorExit:
            self._transport.release(conn)
            raise
        except Exception:
            _log.debug('Streaming search failed, invalidating connection')
            self._transport.invalidate(conn)
            raise
        else:
            self._transport.release(conn)

    def run(self, criteria, callback):
        """
        Calls ``callback`` with each decoded, non-empty entry of the search.
        """
        with contextlib.closing(self.entries(criteria)) as entries:
            for entry in entries:
                callback(entry)
