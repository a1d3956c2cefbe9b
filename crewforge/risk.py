"""
Risk Pattern Catalogue
======================

Static pattern tables used by the command risk classifier
(see ``crewforge.security``).

Tiers:
- CRITICAL (score 100): destructive filesystem, disk, kernel, shutdown,
  firewall and core-config operations. Always blocked.
- HIGH (score 80): risky package/user/service mutations, mass container
  removal, destructive SQL. Blocked.
- MEDIUM (score 50): permission widening, installs, forced git history
  rewrites, builds. Allowed with approval.

Obfuscation patterns are checked before any tier and always win.
"""

import re
from dataclasses import dataclass
from enum import IntEnum, StrEnum


class RiskLevel(StrEnum):
    """Risk levels from low to critical."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TierScore(IntEnum):
    """Score assigned by the first matching pattern in a tier."""
    NONE = 0
    MEDIUM = 50
    HIGH = 80
    CRITICAL = 100


@dataclass(frozen=True)
class RiskPattern:
    """A regex that marks a command as belonging to a risk tier."""

    pattern_id: str
    description: str
    regex: str
    score: TierScore = TierScore.CRITICAL

    def compiled(self) -> re.Pattern:
        return _compile(self.regex)

    def matches(self, command: str) -> bool:
        return self.compiled().search(command) is not None


_CACHE: dict[str, re.Pattern] = {}


def _compile(regex: str) -> re.Pattern:
    pattern = _CACHE.get(regex)
    if pattern is None:
        pattern = re.compile(regex, re.IGNORECASE)
        _CACHE[regex] = pattern
    return pattern


# =============================================================================
# CRITICAL tier
# =============================================================================

CRITICAL_PATTERNS: list[RiskPattern] = [
    # File system destruction
    RiskPattern(
        pattern_id="rm-recursive-root",
        description="Recursive or forced delete of /, /*, ~/* or $HOME",
        regex=r"\brm\s+(-rf?|--recursive|--force)\s+(/|/\*|~/\*|\$home)",
    ),
    RiskPattern(
        pattern_id="rm-root-path",
        description="Delete of a path directly under / (other than /home, /tmp, /var/tmp)",
        regex=r"\brm\s+.*\s+/(?!home|tmp|var/tmp)",
    ),

    # Disk operations
    RiskPattern(
        pattern_id="dd-to-device",
        description="dd writing to a block device",
        regex=r"\bdd\s+if=.*\s+of=/dev/(sd[a-z]|hd[a-z]|nvme\d+n\d+)",
    ),
    RiskPattern(
        pattern_id="mkfs-device",
        description="Filesystem creation on a device",
        regex=r"\bmkfs\.\w+\s+/dev/",
    ),
    RiskPattern(
        pattern_id="fdisk-device",
        description="Partition table edit with fdisk",
        regex=r"\bfdisk\s+/dev/",
    ),
    RiskPattern(
        pattern_id="parted-device",
        description="Partition table edit with parted",
        regex=r"\bparted\s+/dev/",
    ),

    # Shutdown / reboot
    RiskPattern(
        pattern_id="shutdown",
        description="System shutdown",
        regex=r"\bshutdown\s+(-h|--halt|now)",
    ),
    RiskPattern(
        pattern_id="reboot-force",
        description="Forced reboot",
        regex=r"\breboot\s+(--force|-f)",
    ),
    RiskPattern(
        pattern_id="init-runlevel",
        description="Runlevel change to halt or reboot",
        regex=r"\binit\s+[06]",
    ),
    RiskPattern(
        pattern_id="systemctl-power",
        description="systemctl poweroff, halt or reboot",
        regex=r"\bsystemctl\s+(poweroff|halt|reboot)",
    ),

    # Kernel modification
    RiskPattern(
        pattern_id="insmod",
        description="Kernel module insertion",
        regex=r"\binsmod\s+",
    ),
    RiskPattern(
        pattern_id="rmmod",
        description="Kernel module removal",
        regex=r"\brmmod\s+",
    ),
    RiskPattern(
        pattern_id="modprobe-remove",
        description="Kernel module removal via modprobe",
        regex=r"\bmodprobe\s+(-r|--remove)",
    ),

    # Fork bombs
    RiskPattern(
        pattern_id="fork-bomb",
        description="Classic shell fork bomb",
        regex=r":\(\)\s*\{\s*:\|:&\s*\};:",
    ),
    RiskPattern(
        pattern_id="nested-substitution",
        description="Triple nested command substitution",
        regex=r"\$\(.*\$\(.*\$\(",
    ),

    # Core config overwrite
    RiskPattern(
        pattern_id="overwrite-etc-core",
        description="Redirect into passwd, shadow, sudoers, fstab or hosts",
        regex=r">+\s*/etc/(passwd|shadow|sudoers|fstab|hosts)",
    ),
    RiskPattern(
        pattern_id="chmod-000-etc",
        description="Removing all permissions under /etc",
        regex=r"\bchmod\s+000\s+/etc/",
    ),

    # Firewall
    RiskPattern(
        pattern_id="iptables-flush",
        description="Flushing iptables rules",
        regex=r"\biptables\s+(-f|--flush)",
    ),
    RiskPattern(
        pattern_id="ip6tables-flush",
        description="Flushing ip6tables rules",
        regex=r"\bip6tables\s+(-f|--flush)",
    ),
    RiskPattern(
        pattern_id="ufw-disable",
        description="Disabling ufw",
        regex=r"\bufw\s+disable",
    ),
    RiskPattern(
        pattern_id="firewalld-reload",
        description="firewalld complete reload",
        regex=r"\bfirewall-cmd\s+--complete-reload",
    ),
]


# =============================================================================
# HIGH tier
# =============================================================================

HIGH_RISK_PATTERNS: list[RiskPattern] = [
    # Package management
    RiskPattern(
        pattern_id="apt-remove-force",
        description="Forced apt removal",
        regex=r"\bapt(-get)?\s+(remove|purge|autoremove)\s+.*--force",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="yum-remove-nodeps",
        description="yum removal ignoring dependencies",
        regex=r"\byum\s+remove\s+.*--nodeps",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="npm-uninstall-global",
        description="Global npm uninstall",
        regex=r"\bnpm\s+uninstall\s+-g\s+",
        score=TierScore.HIGH,
    ),

    # Users
    RiskPattern(
        pattern_id="userdel-remove-home",
        description="User deletion with home directory",
        regex=r"\buserdel\s+-r\s+",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="passwd-root",
        description="Root password change",
        regex=r"\bpasswd\s+root",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="usermod-sudo",
        description="Granting sudo group membership",
        regex=r"\busermod\s+-ag\s+sudo",
        score=TierScore.HIGH,
    ),

    # Services
    RiskPattern(
        pattern_id="systemctl-stop-access",
        description="Stopping or disabling ssh or networking",
        regex=r"\bsystemctl\s+(stop|disable)\s+(ssh|sshd|network)",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="service-ssh-stop",
        description="Stopping the ssh service",
        regex=r"\bservice\s+(ssh|sshd)\s+stop",
        score=TierScore.HIGH,
    ),

    # Cron
    RiskPattern(
        pattern_id="crontab-remove",
        description="Removing the crontab",
        regex=r"\bcrontab\s+-r",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="cron-append",
        description="Appending to system cron files",
        regex=r"\becho\s+.*>>\s*/etc/cron",
        score=TierScore.HIGH,
    ),

    # Docker
    RiskPattern(
        pattern_id="docker-rm-all",
        description="Force-removing every container",
        regex=r"\bdocker\s+rm\s+-f\s+\$\(docker\s+ps\s+-aq\)",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="docker-prune-all",
        description="Pruning all docker data",
        regex=r"\bdocker\s+system\s+prune\s+-af",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="docker-volume-rm-all",
        description="Removing volumes from a substitution",
        regex=r"\bdocker\s+volume\s+rm\s+\$\(",
        score=TierScore.HIGH,
    ),

    # Databases
    RiskPattern(
        pattern_id="sql-drop-database",
        description="DROP DATABASE",
        regex=r"\bdrop\s+database",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="sql-truncate",
        description="TRUNCATE TABLE",
        regex=r"\btruncate\s+table",
        score=TierScore.HIGH,
    ),
    RiskPattern(
        pattern_id="sql-delete-all",
        description="DELETE with an always-true WHERE",
        regex=r"\bdelete\s+from\s+.*where\s+1=1",
        score=TierScore.HIGH,
    ),
]


# =============================================================================
# MEDIUM tier
# =============================================================================

MEDIUM_RISK_PATTERNS: list[RiskPattern] = [
    RiskPattern(
        pattern_id="chmod-777",
        description="World-writable permissions",
        regex=r"\bchmod\s+777",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="chown-root",
        description="Ownership change to root",
        regex=r"\bchown\s+root",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="apt-install",
        description="apt package installation",
        regex=r"\bapt(-get)?\s+install",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="yum-install",
        description="yum package installation",
        regex=r"\byum\s+install",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="pip-install",
        description="pip package installation",
        regex=r"\bpip\s+install",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="npm-install-global",
        description="Global npm installation",
        regex=r"\bnpm\s+install\s+-g",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="git-force-push",
        description="Forced git push",
        regex=r"\bgit\s+push\s+(-f|--force)",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="git-reset-hard",
        description="Hard git reset",
        regex=r"\bgit\s+reset\s+--hard",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="docker-build",
        description="Docker image build",
        regex=r"\bdocker\s+build",
        score=TierScore.MEDIUM,
    ),
    RiskPattern(
        pattern_id="docker-run-privileged",
        description="Privileged container",
        regex=r"\bdocker\s+run\s+.*--privileged",
        score=TierScore.MEDIUM,
    ),
]

TIERED_PATTERNS: list[list[RiskPattern]] = [
    CRITICAL_PATTERNS,
    HIGH_RISK_PATTERNS,
    MEDIUM_RISK_PATTERNS,
]


# =============================================================================
# Obfuscation
# =============================================================================

OBFUSCATION_PATTERNS: list[RiskPattern] = [
    RiskPattern(
        pattern_id="base64-pipe-shell",
        description="base64 decode piped into a shell",
        regex=r"\becho\s+.*\|\s*base64\s+-d\s*\|\s*bash",
    ),
    RiskPattern(
        pattern_id="hex-pipe-shell",
        description="hex decode piped into a shell",
        regex=r"\becho\s+.*\|\s*xxd\s+-r\s+-p\s*\|\s*bash",
    ),
    RiskPattern(
        pattern_id="substring-expansion",
        description="${var:offset:length} expansion",
        regex=r"\$\{.*:.*:.*\}",
    ),
    RiskPattern(
        pattern_id="replace-expansion",
        description="${var/pattern/replacement} expansion",
        regex=r"\$\{.*/.*/.*\}",
    ),
    RiskPattern(
        pattern_id="nested-command-substitution",
        description="nested $(...) command substitution",
        regex=r"\$\(.*\$\(.*\)\)",
    ),
    RiskPattern(
        pattern_id="nested-backticks",
        description="nested backtick quoting",
        regex=r"`.*`.*`.*`",
    ),
    RiskPattern(
        pattern_id="control-characters",
        description="raw control characters",
        regex=r"[\x00-\x1f\x7f-\x9f]",
    ),
    RiskPattern(
        pattern_id="quote-splice",
        description="empty-quote splicing (r''m)",
        regex=r"r''m\s+",
    ),
    RiskPattern(
        pattern_id="expansion-splice",
        description="empty-expansion splicing (r${}m)",
        regex=r"r\$\{\}\s*m",
    ),
]


# =============================================================================
# Context heuristics
# =============================================================================

@dataclass(frozen=True)
class ContextHeuristic:
    """An additive signal checked on every command."""

    name: str
    regex: str
    weight: int

    def matches(self, command: str) -> bool:
        return re.search(self.regex, command) is not None


CONTEXT_HEURISTICS: list[ContextHeuristic] = [
    ContextHeuristic("command-chaining", r";|&&|\|\|", 20),
    ContextHeuristic("pipe-to-shell", r"\|\s*(bash|sh|zsh|fish)\b", 30),
    ContextHeuristic("redirect-to-etc", r">+\s*/etc/", 40),
    ContextHeuristic("sudo", r"\bsudo\s+", 15),
]
