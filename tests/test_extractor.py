"""Tests for product extraction from listing pages."""

import json

import pytest

from crawler.extractor import PageExtractor
from crawler.models import Platform

PAGE_URL = "https://shop.test/collections/all"


def _ld(payload):
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


class TestStructuredData:
    def test_single_product(self):
        html = _ld({
            "@context": "https://schema.org",
            "@type": "Product",
            "name": "Wireless Mouse X200",
            "sku": "WM-X200",
            "image": ["/img/mouse.jpg"],
            "url": "/products/wireless-mouse",
            "offers": {"@type": "Offer", "price": "29.99", "priceCurrency": "USD"},
        })

        [product] = PageExtractor(html, PAGE_URL).extract()

        assert product.name == "Wireless Mouse X200"
        assert product.price == pytest.approx(29.99)
        assert product.sku == "WM-X200"
        assert product.image_url == "https://shop.test/img/mouse.jpg"
        assert product.product_url == "https://shop.test/products/wireless-mouse"

    def test_item_list_and_graph(self):
        html = _ld({
            "@graph": [
                {"@type": "WebSite", "name": "Shop"},
                {
                    "@type": "ItemList",
                    "itemListElement": [
                        {"@type": "ListItem", "position": 1, "item": {"@type": "Product", "name": "A", "offers": [{"price": 5}]}},
                        {"@type": "Product", "name": "B", "offers": {"lowPrice": "7,50"}},
                    ],
                },
            ]
        })

        products = PageExtractor(html, PAGE_URL).extract()

        assert [p.name for p in products] == ["A", "B"]
        assert products[0].price == 5.0
        assert products[1].price == pytest.approx(7.5)

    def test_sku_falls_back_to_mpn(self):
        html = _ld({"@type": ["Product", "Thing"], "name": "Kettle", "mpn": "KT-9", "image": {"url": "https://cdn.test/k.jpg"}})

        [product] = PageExtractor(html, PAGE_URL).extract()

        assert product.sku == "KT-9"
        assert product.image_url == "https://cdn.test/k.jpg"

    def test_malformed_json_ld_is_skipped(self):
        html = '<script type="application/ld+json">{not json</script>' + _ld({"@type": "Product", "name": "Ok"})
        assert [p.name for p in PageExtractor(html, PAGE_URL).extract()] == ["Ok"]

    def test_structured_data_wins_over_markup(self):
        html = _ld({"@type": "Product", "name": "From JSON"}) + (
            '<div class="product"><h2 class="product-name">From markup</h2></div>'
        )
        assert [p.name for p in PageExtractor(html, PAGE_URL).extract()] == ["From JSON"]


class TestPlatformSelectors:
    def test_shopify_cards(self):
        html = """
        <div class="product-card" data-product-id="111">
          <a class="product-card__link" href="/products/red-shoe">
            <img src="//cdn.shop.test/red.jpg">
            <h3 class="product-card__title">Red Shoe</h3>
          </a>
          <span class="price-item--sale">$49.00</span>
        </div>
        """

        [product] = PageExtractor(html, PAGE_URL).extract(Platform.SHOPIFY)

        assert product.name == "Red Shoe"
        assert product.price == 49.0
        assert product.sku == "111"
        assert product.product_url == "https://shop.test/products/red-shoe"
        assert product.image_url == "https://cdn.shop.test/red.jpg"

    def test_woocommerce_sale_price_uses_current_price(self):
        html = """
        <ul>
          <li class="product type-product">
            <a class="woocommerce-LoopProduct-link" href="/product/mug/">
              <img class="attachment-woocommerce_thumbnail" data-src="/wp-content/uploads/mug.jpg">
              <h2 class="woocommerce-loop-product__title">Coffee Mug</h2>
              <span class="price">
                <del><span class="woocommerce-Price-amount">$20.00</span></del>
                <ins><span class="woocommerce-Price-amount">$15.00</span></ins>
              </span>
            </a>
            <a data-product_id="77" data-product_sku="MUG-1" href="?add-to-cart=77">Add</a>
          </li>
        </ul>
        """

        [product] = PageExtractor(html, "https://shop.test/shop/").extract(Platform.WOOCOMMERCE)

        assert product.name == "Coffee Mug"
        assert product.price == 15.0
        assert product.sku == "77"
        assert product.image_url == "https://shop.test/wp-content/uploads/mug.jpg"
        assert product.product_url == "https://shop.test/product/mug/"

    def test_magento_price_attribute(self):
        html = """
        <ol>
          <li class="product-item">
            <a class="product-item-link" href="/desk.html">Standing Desk</a>
            <strong class="product-item-name">Standing Desk</strong>
            <span data-price-amount="349.5" class="price-wrapper"><span class="price">$349.50</span></span>
          </li>
        </ol>
        """

        [product] = PageExtractor(html, "https://shop.test/furniture.html").extract(Platform.MAGENTO)

        assert product.name == "Standing Desk"
        assert product.price == 349.5
        assert product.product_url == "https://shop.test/desk.html"

    def test_platform_miss_falls_back_to_generic(self):
        html = """
        <div class="product-item-custom">
          <article class="product">
            <h2 class="product-name">Plain Lamp</h2>
            <span class="price">12,50 €</span>
            <a class="product-link" href="/p/lamp">view</a>
          </article>
        </div>
        """

        [product] = PageExtractor(html, "https://shop.test/").extract(Platform.SHOPIFY)

        assert product.name == "Plain Lamp"
        assert product.price == 12.5
        assert product.product_url == "https://shop.test/p/lamp"


class TestGenericMarkup:
    def test_base_href_and_lazy_images(self):
        html = """
        <html><head><base href="https://static.shop.test/eu/"></head><body>
          <div class="product">
            <h3 class="product-title">Canvas Bag</h3>
            <div class="product-image"><img data-lazy-src="img/bag.jpg"></div>
            <a class="product-link" href="bag">Canvas Bag</a>
          </div>
        </body></html>
        """

        [product] = PageExtractor(html, "https://shop.test/").extract()

        assert product.image_url == "https://static.shop.test/eu/img/bag.jpg"
        assert product.product_url == "https://static.shop.test/eu/bag"
        assert product.price is None

    def test_containers_without_name_are_skipped(self):
        html = '<div class="product"><span class="price">$3</span></div>'
        assert PageExtractor(html, PAGE_URL).extract() == []

    def test_page_without_products(self):
        assert PageExtractor("<html><body><p>About us</p></body></html>", PAGE_URL).extract() == []
