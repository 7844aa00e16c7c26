"""Ready-made trigger/notification prompt pairs for common streams."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class StreamPreset:
    id: str
    name: str
    description: str
    category: str
    trigger_prompt: str
    notification_prompt: str
    channel: str = "telegram"
    tags: tuple[str, ...] = field(default_factory=tuple)

    def prompt_template(self) -> dict[str, Any]:
        return {
            "trigger_prompt": self.trigger_prompt,
            "notification_prompt": self.notification_prompt,
        }

    def notification_config(self) -> dict[str, Any]:
        return {"channel": self.channel, "enabled": True}


STREAM_PRESETS: tuple[StreamPreset, ...] = (
    StreamPreset(
        id="ai-news",
        name="AI News Monitor",
        description="Flag significant AI/ML news, research and launches",
        category="Social Media",
        trigger_prompt=(
            "Analyze this post: {{content}}\n\n"
            "Does it contain significant AI/ML news, research breakthroughs, "
            "or important announcements?\n\n"
            "Return TRUE for major research, product launches, company news or "
            "regulation. Return FALSE otherwise."
        ),
        notification_prompt=(
            "Summarize this AI news in 2-3 sentences:\n\n{{content}}\n\n"
            "Include what happened, why it matters and the key takeaway.\n\n"
            "URL: {{url}}"
        ),
    ),
    StreamPreset(
        id="tech-news",
        name="Tech News Digest",
        description="Curate and summarize significant tech stories",
        category="News",
        trigger_prompt=(
            "Analyze this article: {{title}}\n\n{{content}}\n\n"
            "Is this a significant tech news story worth sharing?\n\n"
            "Return TRUE for major launches, industry-changing news, large "
            "acquisitions or technical breakthroughs. Return FALSE for minor "
            "updates or promotional content."
        ),
        notification_prompt=(
            "Create a concise summary of this tech news:\n\n"
            "Title: {{title}}\nContent: {{content}}\n\n"
            "Format:\n[Headline]\n[2-sentence summary]\n[Key insight]\n\n"
            "Link: {{url}}"
        ),
    ),
    StreamPreset(
        id="brand-sentiment",
        name="Brand Sentiment Monitor",
        description="Surface brand mentions worth acknowledging",
        category="Social Media",
        trigger_prompt=(
            "Analyze the sentiment of this post about our brand:\n\n{{content}}\n\n"
            "Answer TRUE for a positive or neutral mention worth acknowledging, "
            "FALSE for negative mentions or spam."
        ),
        notification_prompt=(
            "Brand Mention Alert:\n\nPost: {{content}}\n\n"
            "Sentiment: [Positive/Neutral/Negative]\n"
            "Recommended Action: [response strategy]\n\nLink: {{url}}"
        ),
    ),
    StreamPreset(
        id="security-alerts",
        name="Security Alerts",
        description="Critical vulnerabilities and CVEs",
        category="Security",
        trigger_prompt=(
            "Analyze this security advisory:\n\n{{title}}\n{{content}}\n\n"
            "Is this a critical security issue requiring immediate attention?\n\n"
            "Return TRUE for critical/high CVEs, zero-days or widespread impact. "
            "Return FALSE for low-priority or unrelated issues."
        ),
        notification_prompt=(
            "SECURITY ALERT\n\nTitle: {{title}}\n\n"
            "Summary: [2-3 sentences]\nSeverity: [level]\n"
            "Affected: [systems/software]\nAction Required: [immediate steps]\n\n"
            "Details: {{url}}"
        ),
    ),
    StreamPreset(
        id="competitor-tracking",
        name="Competitor Tracking",
        description="Competitor launches, pricing and partnerships",
        category="Business Intelligence",
        trigger_prompt=(
            "Analyze this post from a competitor:\n\n{{content}}\n\n"
            "Is this a significant competitive move (launch, pricing change, "
            "partnership, expansion, pivot)? Answer TRUE or FALSE."
        ),
        notification_prompt=(
            "Competitor Activity\n\nStream: {{source}}\nUpdate: {{content}}\n\n"
            "What they're doing: [brief]\nPotential impact: [on us]\n"
            "Recommended response: [suggestion]\n\nLink: {{url}}"
        ),
    ),
    StreamPreset(
        id="research-papers",
        name="Research Paper Digest",
        description="Relevant academic papers",
        category="Research",
        trigger_prompt=(
            "Evaluate this research paper:\n\nTitle: {{title}}\nAbstract: {{content}}\n\n"
            "Return TRUE for novel methods, significant results or high-impact "
            "venues in our field. Return FALSE for incremental or unrelated work."
        ),
        notification_prompt=(
            "New Research Paper\n\nTitle: {{title}}\n\n"
            "Key Contributions:\n[2-3 points]\n\nRelevance:\n[why it matters]\n\n"
            "Paper: {{url}}"
        ),
    ),
)

_PRESETS_BY_ID = {preset.id: preset for preset in STREAM_PRESETS}


def get_preset(preset_id: str) -> StreamPreset | None:
    return _PRESETS_BY_ID.get(preset_id)
