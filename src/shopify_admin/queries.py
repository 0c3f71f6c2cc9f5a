# GraphQL documents for the Admin API. Every document carries an operation
# name; the test fake dispatches on it.

GET_LOCATIONS = """
query GetLocations {
  locations(first: 1) {
    edges { node { id name } }
  }
}
"""

GET_PUBLICATIONS = """
query GetPublications {
  publications(first: 10) {
    edges { node { id name } }
  }
}
"""

PUBLISHABLE_PUBLISH = """
mutation PublishablePublish($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""

PRODUCT_CREATE = """
mutation ProductCreate($product: ProductCreateInput!, $media: [CreateMediaInput!]) {
  productCreate(product: $product, media: $media) {
    product { id handle title }
    userErrors { field message }
  }
}
"""

PRODUCT_BY_HANDLE = """
query ProductByHandle($query: String!) {
  products(first: 1, query: $query) {
    nodes { id handle title }
  }
}
"""

PRODUCT_VARIANTS_BULK_CREATE = """
mutation ProductVariantsBulkCreate(
  $productId: ID!,
  $strategy: ProductVariantsBulkCreateStrategy,
  $variants: [ProductVariantsBulkInput!]!
) {
  productVariantsBulkCreate(productId: $productId, strategy: $strategy, variants: $variants) {
    productVariants { id title price }
    userErrors { field message }
  }
}
"""

COLLECTION_CREATE = """
mutation CollectionCreate($input: CollectionInput!) {
  collectionCreate(input: $input) {
    collection { id handle title }
    userErrors { field message }
  }
}
"""

COLLECTION_BY_HANDLE = """
query CollectionByHandle($query: String!) {
  collections(first: 1, query: $query) {
    nodes { id handle title }
  }
}
"""

COLLECTION_ADD_PRODUCTS = """
mutation CollectionAddProducts($id: ID!, $productIds: [ID!]!) {
  collectionAddProducts(id: $id, productIds: $productIds) {
    collection { id }
    userErrors { field message }
  }
}
"""

COLLECTION_UPDATE = """
mutation CollectionUpdate($input: CollectionInput!) {
  collectionUpdate(input: $input) {
    collection { id }
    userErrors { field message }
  }
}
"""

THEME_CREATE = """
mutation ThemeCreate($name: String!, $source: URL!, $role: ThemeRole!) {
  themeCreate(name: $name, source: $source, role: $role) {
    theme { id name role processing }
    userErrors { field message }
  }
}
"""

THEME_STATUS = """
query ThemeStatus($id: ID!) {
  theme(id: $id) { id processing processingFailed }
}
"""

LIST_THEMES = """
query ListThemes {
  themes(first: 50) {
    nodes { id name role }
  }
}
"""

THEME_PUBLISH = """
mutation ThemePublish($id: ID!) {
  themePublish(id: $id) {
    theme { id role }
    userErrors { field message }
  }
}
"""

THEME_FILES_UPSERT = """
mutation ThemeFilesUpsert($themeId: ID!, $files: [OnlineStoreThemeFilesUpsertFileInput!]!) {
  themeFilesUpsert(themeId: $themeId, files: $files) {
    upsertedThemeFiles { filename }
    userErrors { field message }
  }
}
"""

THEME_FILES = """
query ThemeFiles($themeId: ID!, $filenames: [String!]!) {
  theme(id: $themeId) {
    id
    name
    role
    files(filenames: $filenames, first: 10) {
      nodes {
        filename
        body { ... on OnlineStoreThemeFileBodyText { content } }
      }
    }
  }
}
"""

STAGED_UPLOADS_CREATE = """
mutation StagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters { name value }
    }
    userErrors { field message }
  }
}
"""

FILE_CREATE = """
mutation FileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files { id alt fileStatus }
    userErrors { field message }
  }
}
"""

FILE_STATUS = """
query FileStatus($id: ID!) {
  node(id: $id) {
    id
    ... on MediaImage { fileStatus image { url } }
    ... on GenericFile { fileStatus url }
  }
}
"""

LIST_MENUS = """
query ListMenus {
  menus(first: 50) {
    nodes { id handle title }
  }
}
"""

MENU_CREATE = """
mutation MenuCreate($title: String!, $handle: String!, $items: [MenuItemCreateInput!]!) {
  menuCreate(title: $title, handle: $handle, items: $items) {
    menu { id handle title }
    userErrors { field message }
  }
}
"""

MENU_UPDATE = """
mutation MenuUpdate($id: ID!, $title: String!, $handle: String, $items: [MenuItemUpdateInput!]!) {
  menuUpdate(id: $id, title: $title, handle: $handle, items: $items) {
    menu { id handle }
    userErrors { field message }
  }
}
"""

SHOP_POLICY_UPDATE = """
mutation ShopPolicyUpdate($shopPolicy: ShopPolicyInput!) {
  shopPolicyUpdate(shopPolicy: $shopPolicy) {
    shopPolicy { id type }
    userErrors { field message }
  }
}
"""
