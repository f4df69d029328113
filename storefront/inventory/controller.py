from quart import Blueprint, g, jsonify

from ..auth.guards import require_admin, require_user
from ..common.pagination import pagination_block
from ..common.validation import parse_args, parse_body
from .schemas import ProductCreate, ProductQuery, ProductUpdate, ReviewCreate
from .service import (
    add_review,
    categories,
    create_product,
    deactivate_product,
    featured_products,
    get_product,
    get_stock_levels,
    list_products,
    update_product,
)

bp = Blueprint("inventory", __name__, url_prefix="/api/products")


@bp.get("")
async def products_list():
    query = parse_args(ProductQuery)
    products, total = await list_products(query)
    return jsonify({
        "message": "Products retrieved successfully",
        "products": [p.to_dict() for p in products],
        "pagination": pagination_block(query.page, query.limit, total, "totalProducts"),
        "filters": query.model_dump(mode="json", exclude={"page", "limit"}),
    })


@bp.get("/featured")
async def products_featured():
    products = await featured_products()
    return jsonify({
        "message": "Featured products retrieved successfully",
        "products": [p.to_dict() for p in products],
    })


@bp.get("/categories/list")
async def categories_list():
    return jsonify({"message": "Categories retrieved successfully", "categories": await categories()})


@bp.get("/<identifier>")
async def product_detail(identifier: str):
    product = await get_product(identifier)
    return jsonify({"message": "Product retrieved successfully", "product": product.to_dict(with_reviews=True)})


@bp.get("/<int:product_id>/stock")
async def product_stock(product_id: int):
    levels = await get_stock_levels(product_id)
    return jsonify({"product": product_id, "stock": levels})


@bp.post("")
@require_admin
async def product_create():
    data = await parse_body(ProductCreate)
    product = await create_product(data)
    return jsonify({"message": "Product created successfully", "product": product.to_dict()}), 201


@bp.put("/<int:product_id>")
@require_admin
async def product_update(product_id: int):
    data = await parse_body(ProductUpdate)
    product = await update_product(product_id, data)
    return jsonify({"message": "Product updated successfully", "product": product.to_dict()})


@bp.delete("/<int:product_id>")
@require_admin
async def product_delete(product_id: int):
    await deactivate_product(product_id)
    return jsonify({"message": "Product deleted successfully"})


@bp.post("/<int:product_id>/reviews")
@require_user
async def product_review(product_id: int):
    data = await parse_body(ReviewCreate)
    review = await add_review(product_id, g.user, data)
    return jsonify({"message": "Review added successfully", "review": review.to_dict()}), 201
