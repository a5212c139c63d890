# dnsperf/discovery.py
# Version: 1.0.0
# Authoritative nameserver discovery through the system recursive resolver

"""
Nameserver Discovery

Asks the locally configured recursive resolver for a domain's NS set and
resolves each NS hostname to addresses. Glue from the additional section is
used when the response carries it. Every pass rediscovers delegation; nothing
is cached here.
"""

import logging
import socket
from typing import Dict, List, Optional, Sequence, Tuple

from twisted.internet import defer
from twisted.names import client, dns, error

from dnsperf.constants import DNS_DISCOVERY_TIMEOUT, SYSTEM_RESOLV_CONF
from dnsperf.errors import DiscoveryError
from dnsperf.models import Nameserver

logger = logging.getLogger(__name__)


def record_address(rr: dns.RRHeader) -> Optional[str]:
    """Printable address of an A or AAAA record, None for other types"""
    if rr.type == dns.A:
        return rr.payload.dottedQuad()
    if rr.type == dns.AAAA:
        return socket.inet_ntop(socket.AF_INET6, rr.payload.address)
    return None


class NameserverDiscovery:
    """Finds the authoritative nameservers of a domain"""

    def __init__(
        self,
        resolver=None,
        resolv_conf: str = SYSTEM_RESOLV_CONF,
        bootstrap_servers: Sequence[Tuple[str, int]] = (),
        timeout: float = DNS_DISCOVERY_TIMEOUT,
        use_ipv6: bool = False,
        reactor=None,
    ):
        self.resolv_conf = resolv_conf
        self.bootstrap_servers = list(bootstrap_servers)
        self.timeout = timeout
        self.use_ipv6 = use_ipv6
        self._reactor = reactor
        self._resolver = resolver

    @property
    def resolver(self):
        """Recursive resolver, built on first use from resolv.conf or bootstrap servers"""
        if self._resolver is None:
            if self.bootstrap_servers:
                logger.info(
                    "Discovery uses bootstrap resolvers: "
                    + ", ".join(f"{host}:{port}" for host, port in self.bootstrap_servers)
                )
                self._resolver = client.Resolver(
                    servers=self.bootstrap_servers, reactor=self._reactor
                )
            else:
                logger.info(f"Discovery uses system resolvers from {self.resolv_conf}")
                self._resolver = client.Resolver(resolv=self.resolv_conf, reactor=self._reactor)
        return self._resolver

    @defer.inlineCallbacks
    def discover(self, domain: str):
        """
        Discover the authoritative nameservers for a domain

        Returns:
            Deferred firing with a list of Nameserver, in NS answer order.
            Any failure of the NS query itself yields an empty list.
        """
        try:
            answers, _authority, additional = yield self.resolver.lookupNameservers(
                domain, timeout=(self.timeout,)
            )
        except defer.CancelledError:
            raise
        except defer.TimeoutError:
            logger.warning(f"NS lookup for {domain} timed out, skipping domain this pass")
            return []
        except error.DomainError:
            logger.warning(f"NS lookup for {domain}: no such domain, skipping domain this pass")
            return []
        except Exception as e:
            logger.warning(f"NS lookup for {domain} failed: {e}, skipping domain this pass")
            return []

        hostnames = self._nameserver_hostnames(answers)
        if not hostnames:
            logger.warning(f"No NS records returned for {domain}, skipping domain this pass")
            return []

        glue = self._glue_addresses(additional)
        logger.debug(f"{domain}: NS {', '.join(hostnames)} ({len(glue)} with glue)")

        lookups = []
        for hostname in hostnames:
            if hostname in glue:
                lookups.append(defer.succeed(glue[hostname]))
            else:
                lookups.append(self.resolve_hostname(hostname))

        results = yield defer.DeferredList(lookups, consumeErrors=True)

        nameservers = []
        for hostname, (ok, result) in zip(hostnames, results):
            if ok:
                nameservers.append(Nameserver(hostname=hostname, addresses=result))
                continue
            if result.check(defer.CancelledError):
                result.raiseException()
            logger.info(f"{domain}: dropping NS {hostname}: {result.getErrorMessage()}")

        return nameservers

    def _nameserver_hostnames(self, answers: List[dns.RRHeader]) -> List[str]:
        hostnames = []
        for rr in answers:
            if rr.type != dns.NS:
                continue
            hostname = str(rr.payload.name).rstrip(".").lower()
            if hostname and hostname not in hostnames:
                hostnames.append(hostname)
        return hostnames

    def _glue_addresses(self, additional: List[dns.RRHeader]) -> Dict[str, Tuple[str, ...]]:
        glue: Dict[str, List[str]] = {}
        for rr in additional:
            if rr.type == dns.AAAA and not self.use_ipv6:
                continue
            address = record_address(rr)
            if address is None:
                continue
            owner = str(rr.name).rstrip(".").lower()
            addresses = glue.setdefault(owner, [])
            if address not in addresses:
                addresses.append(address)
        return {owner: tuple(addresses) for owner, addresses in glue.items()}

    @defer.inlineCallbacks
    def resolve_hostname(self, hostname: str):
        """Resolve one NS hostname; errbacks with DiscoveryError if it has no address"""
        lookups = [self.resolver.lookupAddress(hostname, timeout=(self.timeout,))]
        if self.use_ipv6:
            lookups.append(self.resolver.lookupIPV6Address(hostname, timeout=(self.timeout,)))

        results = yield defer.DeferredList(lookups, consumeErrors=True)

        addresses = []
        reasons = []
        for ok, result in results:
            if not ok:
                if result.check(defer.CancelledError):
                    result.raiseException()
                reasons.append(result.getErrorMessage())
                continue
            answers = result[0]
            for rr in answers:
                address = record_address(rr)
                if address is not None and address not in addresses:
                    addresses.append(address)

        if not addresses:
            detail = "; ".join(reasons) or "no address records"
            raise DiscoveryError(f"Could not resolve {hostname}: {detail}")

        return tuple(addresses)
