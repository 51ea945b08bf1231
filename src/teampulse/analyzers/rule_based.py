"""Deterministic, threshold-based retrospective insights.

Rules are grouped by record kind:
- Issues (issue tracker): completions, blockers, overdue work, bug ratio, milestones
- Messages (team chat): sentiment share, celebrations, activity, standups
- Commits and pull requests (code host): velocity, merges, reviews, PR size

The analyzer is pure and total: it performs no I/O, never raises for
well-formed records and returns empty buckets when there is no signal.
"""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from teampulse.config import AnalyzerConfig
from teampulse.models.activity import ActivityBundle, ActivityRecord, parse_timestamp
from teampulse.models.insight import Bucket, Insight, InsightSet, InsightSource

logger = logging.getLogger(__name__)

# Sources whose rules run even when they delivered no records
_ISSUE_SOURCES = {"linear"}
_CHAT_SOURCES = {"slack"}
_CODE_SOURCES = {"github"}


def _count(value: Any) -> int:
    """Count a collector field given as a number, a list or {"nodes": [...]}."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, Mapping):
        value = value.get("nodes", [])
    try:
        return len(value)
    except TypeError:
        return 0


def _titles(records: Iterable[ActivityRecord], limit: int | None = None) -> str:
    titles = [r.title for r in records if r.title]
    if limit is not None and len(titles) > limit:
        return ", ".join(titles[:limit]) + "..."
    return ", ".join(titles)


class RuleBasedAnalyzer:
    """Produces retrospective insights from fixed threshold rules.

    Attributes:
        config: Rule thresholds
        categorizer: Optional Categorizer used to fill category, impact and priority
    """

    POSITIVE_KEYWORDS = (
        "great", "awesome", "excellent", "perfect", "love", "amazing",
        "fantastic", "good job", "well done", "congrats", "celebration",
        "thanks", "thank you", "nice", "good", "solid", "clean", "smooth",
        "shipped", "deployed", "released", "done", "completed", "finished",
    )

    NEGATIVE_KEYWORDS = (
        "blocked", "stuck", "problem", "issue", "bug", "broken", "failed",
        "frustrated", "annoying", "slow", "urgent", "critical", "help",
        "error", "crash", "down", "not working", "fix",
    )

    PROCESS_KEYWORDS = (
        "meeting", "standup", "retro", "planning", "review", "demo",
        "deployment", "release", "merge", "pr", "pull request",
    )

    CELEBRATION_WORDS = ("shipped", "deployed", "released")
    CELEBRATION_REACTIONS = ("tada", "rocket", "fire")

    def __init__(self, config: AnalyzerConfig | None = None, categorizer: Any = None) -> None:
        """Initialize analyzer.

        Args:
            config: Rule thresholds (defaults apply when omitted)
            categorizer: Optional Categorizer for enrichment
        """
        self.config = config or AnalyzerConfig()
        self.categorizer = categorizer

    def analyze(self, bundle: ActivityBundle, now: datetime | None = None) -> InsightSet:
        """Analyze every source in the bundle.

        Args:
            bundle: Collected activity records
            now: Reference time for age-based rules (defaults to current UTC time)

        Returns:
            InsightSet with rule insights
        """
        now = parse_timestamp(now) or datetime.now(UTC)
        result = InsightSet(metadata={"analyzer": "rule", "sources": bundle.sources})

        for source in bundle.sources:
            issues = bundle.kinds(source, "issue")
            messages = bundle.kinds(source, "message")
            commits = bundle.kinds(source, "commit")
            pull_requests = bundle.kinds(source, "pull_request")

            if issues or source in _ISSUE_SOURCES:
                result.extend(self.analyze_issues(issues, source, now))
            if messages or source in _CHAT_SOURCES:
                result.extend(self.analyze_messages(messages, source))
            if commits or pull_requests or source in _CODE_SOURCES:
                result.extend(self.analyze_code(commits, pull_requests, source))

        if self.categorizer is not None:
            for _, insights in result.items():
                insights[:] = [self.categorizer.enrich(i) for i in insights]

        logger.debug("Rule analysis produced %s", result.counts())
        return result

    # =========================================================================
    # Insight Construction
    # =========================================================================

    def _insight(self, title: str, details: str, origin: str, **metadata: Any) -> Insight:
        return Insight(
            title=title,
            details=details,
            source=InsightSource.RULE,
            confidence=self.config.rule_confidence,
            metadata={"origin": origin, **metadata},
        )

    def _action(self, title: str, details: str, priority: str, origin: str) -> Insight:
        return Insight(
            title=title,
            details=details,
            source=InsightSource.RULE,
            confidence=self.config.rule_confidence,
            priority_level=priority,
            metadata={"origin": origin, "assignee": "team"},
        )

    # =========================================================================
    # Issue Tracker Rules
    # =========================================================================

    @staticmethod
    def _is_completed(issue: ActivityRecord) -> bool:
        state = issue.state.lower()
        return "completed" in state or "done" in state

    @staticmethod
    def _is_blocked(issue: ActivityRecord) -> bool:
        state = issue.state.lower()
        return "blocked" in state or "cancelled" in state or "canceled" in state

    @staticmethod
    def _is_bug(issue: ActivityRecord) -> bool:
        title = issue.title.lower()
        return issue.has_label("bug", "defect", "fix") or "bug" in title or "fix" in title

    @staticmethod
    def _is_feature(issue: ActivityRecord) -> bool:
        title = issue.title.lower()
        return (
            issue.has_label("feature", "enhancement", "improvement")
            or "feature" in title
            or "add" in title
        )

    def analyze_issues(
        self, issues: list[ActivityRecord], origin: str, now: datetime
    ) -> InsightSet:
        """Apply issue tracker rules."""
        cfg = self.config
        result = InsightSet()

        completed = [i for i in issues if self._is_completed(i)]
        blocked = [i for i in issues if self._is_blocked(i)]
        high_priority = [
            i for i in issues if i.priority is not None and i.priority >= cfg.high_priority
        ]

        if completed:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"Completed {len(completed)} issues this period",
                    f"Issues: {_titles(completed, limit=3)}",
                    origin,
                    count=len(completed),
                ),
            )

            fast = [
                i
                for i in completed
                if i.created_at
                and i.completed_at
                and i.completed_at - i.created_at < timedelta(days=cfg.fast_completion_days)
            ]
            if fast:
                result.add(
                    Bucket.WENT_WELL,
                    self._insight(
                        f"{len(fast)} issues completed quickly",
                        f"Fast completions: {_titles(fast)}",
                        origin,
                        count=len(fast),
                    ),
                )

        if blocked:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    f"{len(blocked)} issues were blocked or cancelled",
                    f"Blocked: {_titles(blocked)}",
                    origin,
                    count=len(blocked),
                ),
            )

        overdue_cutoff = now - timedelta(days=cfg.overdue_days)
        overdue = [
            i
            for i in high_priority
            if not self._is_completed(i) and i.created_at and i.created_at < overdue_cutoff
        ]
        if overdue:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    f"{len(overdue)} high-priority issues still pending",
                    f"Overdue: {_titles(overdue)}",
                    origin,
                    count=len(overdue),
                ),
            )

        if len(blocked) > 2:
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Review and address recurring blockers",
                    "Multiple issues were blocked - investigate common causes",
                    "high",
                    origin,
                ),
            )

        if overdue:
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Prioritize high-priority backlog items",
                    "Several high-priority items are overdue",
                    "medium",
                    origin,
                ),
            )

        complex_issues = [
            i for i in issues if _count(i.attributes.get("comments")) > cfg.complex_issue_comments
        ]
        if complex_issues:
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Break down complex issues into smaller tasks",
                    f"{len(complex_issues)} issues had extensive discussions",
                    "medium",
                    origin,
                ),
            )

        self._bug_ratio_rules(issues, origin, result)
        self._milestone_rules(issues, origin, now, result)
        return result

    def _bug_ratio_rules(
        self, issues: list[ActivityRecord], origin: str, result: InsightSet
    ) -> None:
        bugs = [i for i in issues if self._is_bug(i)]
        features = [i for i in issues if self._is_feature(i)]
        total = len(bugs) + len(features)
        if total == 0:
            return

        ratio = len(bugs) / total * 100
        if ratio > self.config.high_bug_ratio:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    f"High bug ratio: {ratio:.1f}% of work was bug fixes",
                    f"{len(bugs)} bugs vs {len(features)} features - may indicate quality issues",
                    origin,
                    ratio=round(ratio, 1),
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Review code quality practices",
                    "High bug ratio suggests need for better testing or code review",
                    "high",
                    origin,
                ),
            )
        elif ratio < self.config.low_bug_ratio:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"Low bug ratio: Only {ratio:.1f}% of work was bug fixes",
                    f"{len(bugs)} bugs vs {len(features)} features - good code quality",
                    origin,
                    ratio=round(ratio, 1),
                ),
            )

    def _milestone_rules(
        self,
        issues: list[ActivityRecord],
        origin: str,
        now: datetime,
        result: InsightSet,
    ) -> None:
        groups: dict[str, dict[str, Any]] = {}
        for issue in issues:
            milestone = issue.attributes.get("milestone") or issue.attributes.get(
                "projectMilestone"
            )
            if not isinstance(milestone, Mapping):
                continue
            key = str(milestone.get("id") or milestone.get("name"))
            group = groups.setdefault(
                key,
                {
                    "name": milestone.get("name") or key,
                    "target": parse_timestamp(milestone.get("targetDate")),
                    "total": 0,
                    "completed": 0,
                },
            )
            group["total"] += 1
            if self._is_completed(issue):
                group["completed"] += 1

        for group in groups.values():
            rate = group["completed"] / group["total"] * 100
            overdue = group["target"] is not None and group["target"] < now
            progress = f"{group['completed']}/{group['total']}"

            if rate >= 80:
                suffix = " (past target date)" if overdue else ""
                result.add(
                    Bucket.WENT_WELL,
                    self._insight(
                        f'Milestone "{group["name"]}" is {rate:.1f}% complete',
                        f"{progress} issues completed{suffix}",
                        origin,
                    ),
                )
            elif rate < 50 and overdue:
                result.add(
                    Bucket.DIDNT_GO_WELL,
                    self._insight(
                        f'Milestone "{group["name"]}" is behind schedule',
                        f"Only {rate:.1f}% complete ({progress}) and past target date",
                        origin,
                    ),
                )
                result.add(
                    Bucket.ACTION_ITEMS,
                    self._action(
                        f"Review and re-scope milestone: {group['name']}",
                        "Milestone is overdue with low completion rate",
                        "high",
                        origin,
                    ),
                )

    # =========================================================================
    # Chat Rules
    # =========================================================================

    @staticmethod
    def _matches(text: str, keywords: Iterable[str]) -> bool:
        return any(keyword in text for keyword in keywords)

    def _is_celebration(self, message: ActivityRecord) -> bool:
        if self._matches(message.body.lower(), self.CELEBRATION_WORDS):
            return True
        reactions = message.attributes.get("reactions") or []
        names = {r.get("name") if isinstance(r, Mapping) else r for r in reactions}
        return any(name in names for name in self.CELEBRATION_REACTIONS)

    def analyze_messages(self, messages: list[ActivityRecord], origin: str) -> InsightSet:
        """Apply team chat rules."""
        cfg = self.config
        result = InsightSet()
        total = len(messages)

        if total == 0:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "Limited chat activity detected",
                    "The bot may need to be added to more team channels",
                    origin,
                ),
            )
            return result

        texts = [m.text.lower() for m in messages]
        positive = sum(1 for t in texts if self._matches(t, self.POSITIVE_KEYWORDS))
        negative = sum(1 for t in texts if self._matches(t, self.NEGATIVE_KEYWORDS))
        authors = len({m.author for m in messages})
        per_author = total / authors if authors else float(total)

        if positive > total * cfg.positive_message_ratio:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    "High team morale in chat conversations",
                    f"{positive} positive messages out of {total} total",
                    origin,
                ),
            )

        celebrations = sum(1 for m in messages if self._is_celebration(m))
        if celebrations:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"Team celebrated {celebrations} achievements",
                    "Good team culture around recognizing wins",
                    origin,
                ),
            )

        if negative > total * cfg.negative_message_ratio:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "High frustration signals in team chat",
                    f"{negative} messages indicating problems or blockers",
                    origin,
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Address recurring team frustrations",
                    "Multiple frustration signals detected in team chat",
                    "medium",
                    origin,
                ),
            )

        if per_author < cfg.low_messages_per_author:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "Low team communication activity",
                    f"Only {per_author:.1f} messages per person on average",
                    origin,
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Encourage more team communication",
                    "Consider more async updates or check-ins",
                    "low",
                    origin,
                ),
            )

        standups = sum(
            1
            for t in texts
            if self._matches(t, self.PROCESS_KEYWORDS) and ("standup" in t or "daily" in t)
        )
        if standups:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    "Active standup participation",
                    f"{standups} standup-related messages",
                    origin,
                ),
            )

        if total > cfg.active_chat_messages:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    "Active team communication",
                    f"{total} messages from {authors} team members",
                    origin,
                ),
            )

        channels = Counter(
            str(m.attributes["channel"]) for m in messages if m.attributes.get("channel")
        )
        if channels:
            channel, count = channels.most_common(1)[0]
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"Most active channel: #{channel}",
                    f"{count} messages in this channel",
                    origin,
                ),
            )

        return result

    # =========================================================================
    # Code Host Rules
    # =========================================================================

    @staticmethod
    def _is_merged(pr: ActivityRecord) -> bool:
        return pr.completed_at is not None or "merged" in pr.state.lower()

    @staticmethod
    def _changed_lines(pr: ActivityRecord) -> int:
        return _count(pr.attributes.get("additions")) + _count(pr.attributes.get("deletions"))

    @staticmethod
    def _was_reviewed(pr: ActivityRecord) -> bool:
        return (
            _count(pr.attributes.get("comments")) > 0
            or _count(pr.attributes.get("review_comments")) > 0
            or _count(pr.attributes.get("reviews")) > 0
        )

    def analyze_code(
        self,
        commits: list[ActivityRecord],
        pull_requests: list[ActivityRecord],
        origin: str,
    ) -> InsightSet:
        """Apply code host rules."""
        cfg = self.config
        result = InsightSet()

        merged = [pr for pr in pull_requests if self._is_merged(pr)]
        open_prs = [
            pr for pr in pull_requests if pr.state.lower() == "open" and not self._is_merged(pr)
        ]
        reviewed = [pr for pr in pull_requests if self._was_reviewed(pr)]
        large = [pr for pr in pull_requests if self._changed_lines(pr) > cfg.large_pr_lines]
        review_rate = len(reviewed) / len(pull_requests) * 100 if pull_requests else 0.0

        if commits:
            authors = len({c.author for c in commits if c.author})
            active_days = len({c.created_at.date() for c in commits if c.created_at}) or 1
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"{len(commits)} commits from {authors} contributors",
                    f"Active development with {len(commits) / active_days:.1f} commits per day",
                    origin,
                    count=len(commits),
                ),
            )

        if merged:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    f"{len(merged)} pull requests merged successfully",
                    "Good code collaboration and review process",
                    origin,
                    count=len(merged),
                ),
            )

        if pull_requests and review_rate > cfg.high_review_rate:
            result.add(
                Bucket.WENT_WELL,
                self._insight(
                    "Strong code review culture",
                    f"{review_rate:.1f}% of PRs had reviews or discussions",
                    origin,
                ),
            )

        if len(open_prs) > len(merged) and len(open_prs) > 3:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    f"{len(open_prs)} pull requests still open",
                    "More open PRs than merged - potential review bottleneck",
                    origin,
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Review and merge pending pull requests",
                    "High number of open PRs may indicate review bottleneck",
                    "medium",
                    origin,
                ),
            )

        if large:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    f"{len(large)} large pull requests (>{cfg.large_pr_lines} lines)",
                    "Large PRs are harder to review and more error-prone",
                    origin,
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Break down large changes into smaller PRs",
                    "Smaller PRs are easier to review and less risky",
                    "medium",
                    origin,
                ),
            )

        if review_rate < cfg.low_review_rate and len(pull_requests) > 2:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "Low code review engagement",
                    f"Only {review_rate:.1f}% of PRs had reviews",
                    origin,
                ),
            )
            result.add(
                Bucket.ACTION_ITEMS,
                self._action(
                    "Improve code review process",
                    "Consider review assignments or pair programming",
                    "high",
                    origin,
                ),
            )

        if not commits and not pull_requests:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "No code activity detected",
                    "No commits or PRs found in the selected timeframe",
                    origin,
                ),
            )
        elif len(commits) < cfg.low_activity_commits and len(pull_requests) < cfg.low_activity_prs:
            result.add(
                Bucket.DIDNT_GO_WELL,
                self._insight(
                    "Low development activity",
                    f"Only {len(commits)} commits and {len(pull_requests)} PRs",
                    origin,
                ),
            )

        return result
