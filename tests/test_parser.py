import pytest

from conftest import SAMPLE_STRUCTURED, structured_listing
from playscrape.models.app_record import NO_DESCRIPTION, NOT_AVAILABLE, UNKNOWN_DEVELOPER
from playscrape.services import parser
from playscrape.services.exceptions import ExtractionError
from playscrape.services.fetch import parse_document
from playscrape.services.parser import (
    FIELD_CHAINS,
    TIER_DOM,
    TIER_ORDER,
    FieldStrategy,
    extract,
    get_strategy_metrics,
    resolve_fields,
)

DETAILS_PANEL = """
<div class="VfPpkd-A7Ei6b"><div class="BgcNfc">Updated on</div><span class="htlgb">Mar 3, 2024</span></div>
<div class="VfPpkd-A7Ei6b"><div class="BgcNfc">Current Version</div><span class="htlgb">2.4.1</span></div>
<div class="VfPpkd-A7Ei6b"><div class="BgcNfc">Requires Android</div><span class="htlgb">8.0 and up</span></div>
<div class="VfPpkd-A7Ei6b"><div class="BgcNfc">Installs</div><span class="htlgb">1,000,000+</span></div>
"""


def test_every_chain_lists_strategies_in_tier_order():
    for chain in FIELD_CHAINS.all():
        tiers = [TIER_ORDER.index(strategy.tier) for strategy in chain.strategies]
        assert tiers == sorted(tiers), chain.field
        for strategy in chain.strategies:
            assert callable(strategy.resolver), strategy.name


def test_structured_only_page_resolves_and_fills_sentinels():
    record = extract(parse_document(structured_listing()), identifier="com.example.sample")

    assert record.title == "Sample App"
    assert record.identifier == "com.example.sample"
    assert record.rating == pytest.approx(4.5)
    assert record.rating_count == 1200
    assert record.developer == "Example Labs"
    assert record.developer_website == "https://example.com"
    assert record.category == "PRODUCTIVITY"
    assert record.icon == "https://play-lh.googleusercontent.com/sample-icon"
    assert record.free is True
    assert record.installs == NOT_AVAILABLE
    assert record.last_updated == NOT_AVAILABLE
    assert record.current_version == NOT_AVAILABLE
    assert record.android_version == NOT_AVAILABLE
    assert record.developer_email == NOT_AVAILABLE
    assert record.description == NO_DESCRIPTION
    assert record.summary == NO_DESCRIPTION
    assert record.screenshots == ()


def test_structured_data_outranks_dom_for_title():
    html = structured_listing(body="<h1><span>Dom Title</span></h1>")

    context = resolve_fields(parse_document(html))

    assert context.values["title"] == "Sample App"
    assert context.sources["title"].startswith("structured_data")


def test_dom_title_used_when_structured_data_missing():
    html = """
    <html><head><meta property="og:title" content="Meta Title - Apps on Google Play"></head>
    <body><h1><span>Dom Title</span></h1></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["title"] == "Dom Title"
    assert context.sources["title"].startswith(TIER_DOM)


def test_meta_title_is_last_resort_and_loses_store_suffix():
    html = """
    <html><head><meta property="og:title" content="Meta Title - Apps on Google Play">
    <link rel="canonical" href="https://play.google.com/store/apps/details?id=com.example.meta">
    <meta name="description" content="  Short   pitch  "></head><body></body></html>
    """

    record = extract(parse_document(html))

    assert record.title == "Meta Title"
    assert record.identifier == "com.example.meta"
    assert record.summary == "Short pitch"
    assert record.developer == UNKNOWN_DEVELOPER


def test_details_panel_fields():
    html = f"<html><body><h1><span>Panel App</span></h1>{DETAILS_PANEL}</body></html>"

    record = extract(parse_document(html))

    assert record.last_updated == "Mar 3, 2024"
    assert record.current_version == "2.4.1"
    assert record.android_version == "8.0 and up"
    assert record.installs == "1,000,000+"


def test_installs_from_free_text_when_no_dom_source():
    html = """
    <html><body><h1><span>Text App</span></h1>
    <p>Loved by players, over 50M+ downloads worldwide.</p></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["installs"] == "50M+"
    assert context.sources["installs"] == "text_pattern:downloads"


def test_installs_from_embedded_script_payload():
    html = """
    <html><body><h1><span>Script App</span></h1>
    <script>window.data = {"numDownloads": "10M+"};</script></body></html>
    """

    record = extract(parse_document(html))

    assert record.installs == "10M+"


def test_text_patterns_fill_remaining_fields():
    html = """
    <html><body><h1><span>Pattern App</span></h1>
    <p>Rated 4.2 stars out of five stars</p>
    <p>1.2K reviews</p>
    <p>Updated on Mar 3, 2024</p>
    <p>Requires Android 8.0 and up</p>
    <p>Contact support@example.com for help</p>
    </body></html>
    """

    record = extract(parse_document(html))

    assert record.rating == pytest.approx(4.2)
    assert record.rating_count == 1200
    assert record.last_updated == "Mar 3, 2024"
    assert record.android_version == "8.0 and up"
    assert record.developer_email == "support@example.com"


def test_updated_label_sibling():
    html = """
    <html><body><h1><span>Sibling App</span></h1>
    <div><div>Updated on</div><div>Jan 9, 2025</div></div></body></html>
    """

    record = extract(parse_document(html))

    assert record.last_updated == "Jan 9, 2025"


def test_mailto_link_beats_free_text_email():
    html = """
    <html><body><h1><span>Mail App</span></h1>
    <a href="mailto:dev@example.com?subject=hi">Email</a>
    <p>other@example.org</p></body></html>
    """

    record = extract(parse_document(html))

    assert record.developer_email == "dev@example.com"


def test_screenshots_are_filtered_deduplicated_and_capped():
    base = "https://play-lh.googleusercontent.com"
    html = f"""
    <html><body><h1><span>Shots</span></h1>
    <img src="{base}/shot1">
    <img src="{base}/shot1">
    <img src="https://example.com/banner.png">
    <img data-src="{base}/shot2">
    <img srcset="{base}/shot3 1x, {base}/shot3-2x 2x">
    <img src="//play-lh.googleusercontent.com/shot4">
    <img src="{base}/shot5">
    <img src="{base}/shot6">
    </body></html>
    """

    record = extract(parse_document(html))

    assert record.screenshots == (
        f"{base}/shot1",
        f"{base}/shot2",
        f"{base}/shot3",
        f"{base}/shot4",
        f"{base}/shot5",
    )


def test_flags_from_page_text():
    html = """
    <html><body><h1><span>Flag App</span></h1>
    <p>Contains ads</p><p>In-app purchases</p>
    <meta itemprop="price" content="0"></body></html>
    """

    record = extract(parse_document(html))

    assert record.ad_supported is True
    assert record.in_app_purchases is True
    assert record.free is True


def test_paid_price_is_not_free():
    payload = dict(SAMPLE_STRUCTURED, offers={"@type": "Offer", "price": "2.99"})

    record = extract(parse_document(structured_listing(payload, body="<p>Free updates</p>")))

    assert record.free is False
    assert record.ad_supported is False


def test_missing_title_is_not_found():
    html = "<html><body><p>We're sorry, the requested URL was not found.</p></body></html>"

    with pytest.raises(ExtractionError) as excinfo:
        extract(parse_document(html), identifier="com.example.gone")

    assert excinfo.value.reason == ExtractionError.NOT_FOUND
    assert excinfo.value.identifier == "com.example.gone"


def test_interstitial_page_is_blocked():
    html = """
    <html><body><p>Our systems have detected unusual traffic from your
    computer network.</p></body></html>
    """

    with pytest.raises(ExtractionError) as excinfo:
        extract(parse_document(html))

    assert excinfo.value.blocked


def test_failing_strategy_is_skipped():
    def broken(context):
        raise RuntimeError("selector exploded")

    registry = FIELD_CHAINS.override(
        "title",
        FieldStrategy("dom:broken", TIER_DOM, broken),
        FieldStrategy("dom:fallback", TIER_DOM, lambda ctx: "Recovered Title"),
    )

    record = extract(parse_document("<html></html>"), registry=registry)

    assert record.title == "Recovered Title"


def test_invalid_json_ld_falls_through_to_dom():
    html = """
    <html><head><script type="application/ld+json">{not json</script></head>
    <body><h1><span>Dom Only</span></h1></body></html>
    """

    record = extract(parse_document(html))

    assert record.title == "Dom Only"


def test_strategy_metrics_count_wins_and_misses():
    extract(parse_document(structured_listing()))

    metrics = get_strategy_metrics()

    assert metrics["title"]["wins"] == {"structured_data:structured_name": 1}
    assert metrics["installs"]["misses"] == 1


def test_blocked_phrases_default():
    assert "unusual traffic" in parser.BLOCKED_PAGE_PHRASES


def test_aria_label_rating_wins_without_structured_data():
    html = """
    <html><body><h1><span>Aria App</span></h1>
    <div aria-label="Rated 4.4 stars out of five stars"></div>
    <div class="TT9eCd">3.1</div></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["rating"] == pytest.approx(4.4)
    assert context.sources["rating"] == "accessibility:rating_from_aria_label"


def test_aria_label_rating_skips_content_rating_badge():
    html = """
    <html><body><h1><span>Family App</span></h1>
    <span aria-label="Rated for 3+">PEGI 3</span>
    <div aria-label="Rated 4.4 stars out of five stars"></div></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["rating"] == pytest.approx(4.4)
    assert context.sources["rating"] == "accessibility:rating_from_aria_label"


def test_aria_heading_title_outranks_dom_heading():
    html = """
    <html><body><div role="heading" aria-level="1">Aria Title</div>
    <h1><span>Dom Title</span></h1></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["title"] == "Aria Title"
    assert context.sources["title"].startswith("accessibility")


def test_details_panel_installs_beat_loose_download_text():
    html = f"""
    <html><body><h1><span>Panel App</span></h1>
    {DETAILS_PANEL}
    <p>Over 50M+ downloads worldwide</p></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["installs"] == "1,000,000+"
    assert context.sources["installs"].startswith("dom:")


def test_stat_strip_supplies_installs_and_review_count():
    html = """
    <html><body><h1><span>Stats App</span></h1>
    <div class="wVqUob"><div class="ClM7O">4.3</div><div class="g1rdde">25K reviews</div></div>
    <div class="wVqUob"><div class="ClM7O">10M+</div><div class="g1rdde">Downloads</div></div>
    </body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["installs"] == "10M+"
    assert context.sources["installs"] == "dom:installs_from_stats"
    assert context.values["rating_count"] == 25000
    assert context.sources["rating_count"] == "dom:rating_count_from_stats"


def test_icon_from_image_tag_beats_og_image():
    html = """
    <html><head>
    <meta property="og:image" content="https://play-lh.googleusercontent.com/icon-og">
    </head><body><h1><span>Icon App</span></h1>
    <img class="T75of" src="https://play-lh.googleusercontent.com/icon-dom"></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["icon"] == "https://play-lh.googleusercontent.com/icon-dom"
    assert context.sources["icon"] == "dom:icon_img"


def test_icon_falls_back_to_og_image():
    html = """
    <html><head>
    <meta property="og:image" content="https://play-lh.googleusercontent.com/icon-og">
    </head><body><h1><span>Meta Icon App</span></h1></body></html>
    """

    context = resolve_fields(parse_document(html))

    assert context.values["icon"] == "https://play-lh.googleusercontent.com/icon-og"
    assert context.sources["icon"] == "meta_tag:og_image"


def test_asset_file_names_are_not_taken_for_email():
    html = """
    <html><body><h1><span>Asset App</span></h1>
    <p>logo@2x.png</p></body></html>
    """

    record = extract(parse_document(html))

    assert record.developer_email == NOT_AVAILABLE


def test_free_text_email_skips_asset_names_before_real_address():
    html = """
    <html><body><h1><span>Asset App</span></h1>
    <p>banner@3x.webp</p><p>Write to help@example.org</p></body></html>
    """

    record = extract(parse_document(html))

    assert record.developer_email == "help@example.org"
