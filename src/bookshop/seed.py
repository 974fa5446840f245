"""Demo data loaded into a fresh store."""

from datetime import timedelta
from decimal import Decimal

from .auth import hash_password
from .models import (
    Address,
    AddressType,
    Coupon,
    DiscountType,
    PaymentMethod,
    PaymentMethodType,
    Product,
    Role,
    User,
    _utc_now,
)
from .store import Store

# (name, author, genre, isbn, price, stock, low-stock threshold, description)
BOOKS = [
    ("The Great Gatsby", "F. Scott Fitzgerald", "Classic Fiction", "978-0743273565", "10.99", 15, 5,
     "A novel written by American author F. Scott Fitzgerald."),
    ("1984", "George Orwell", "Dystopian Fiction", "978-0451524935", "8.99", 20, 5,
     "A dystopian social science fiction novel and cautionary tale."),
    ("To Kill a Mockingbird", "Harper Lee", "Classic Fiction", "978-0061120084", "7.99", 12, 5,
     "A novel by Harper Lee published in 1960."),
    ("The Catcher in the Rye", "J. D. Salinger", "Classic Fiction", "978-0316769488", "6.99", 8, 5,
     "A novel by J. D. Salinger, published as a novel in 1951."),
    ("Pride and Prejudice", "Jane Austen", "Romance", "978-0141439518", "9.99", 25, 5,
     "A romantic novel of manners written by Jane Austen in 1813."),
    ("Moby-Dick", "Herman Melville", "Adventure", "978-1503280786", "11.99", 3, 5,
     "A novel by Herman Melville, published in 1851."),
    ("War and Peace", "Leo Tolstoy", "Historical Fiction", "978-0199232765", "12.99", 10, 5,
     "A novel by the Russian author Leo Tolstoy."),
    ("The Odyssey", "Homer", "Epic Poetry", "978-0140268867", "13.99", 7, 5,
     "An ancient Greek epic poem attributed to Homer."),
    ("Crime and Punishment", "Fyodor Dostoevsky", "Psychological Fiction", "978-0486415871", "14.99", 14, 5,
     "A novel by the Russian author Fyodor Dostoevsky."),
    ("The Brothers Karamazov", "Fyodor Dostoevsky", "Psychological Fiction", "978-0374528379", "15.99", 6, 5,
     "A novel by the Russian author Fyodor Dostoevsky."),
    ("Brave New World", "Aldous Huxley", "Dystopian Fiction", "978-0060850524", "16.99", 18, 5,
     "A dystopian social science fiction novel by Aldous Huxley."),
    ("Jane Eyre", "Charlotte Brontë", "Romance", "978-0141441146", "17.99", 22, 5,
     "A novel by English writer Charlotte Brontë."),
    ("Wuthering Heights", "Emily Brontë", "Gothic Fiction", "978-0141439556", "18.99", 11, 5,
     "A novel by Emily Brontë published in 1847."),
    ("The Divine Comedy", "Dante Alighieri", "Epic Poetry", "978-0142437223", "19.99", 5, 5,
     "An Italian narrative poem by Dante Alighieri."),
    ("The Hobbit", "J. R. R. Tolkien", "Fantasy", "978-0547928227", "20.99", 30, 5,
     "A children's fantasy novel by J. R. R. Tolkien."),
    ("The Lord of the Rings", "J. R. R. Tolkien", "Fantasy", "978-0544003415", "21.99", 28, 5,
     "An epic high-fantasy novel by J. R. R. Tolkien."),
    ("Harry Potter and the Sorcerer's Stone", "J. K. Rowling", "Fantasy", "978-0590353427", "22.99", 50, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Chamber of Secrets", "J. K. Rowling", "Fantasy", "978-0439064873", "23.99", 45, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Prisoner of Azkaban", "J. K. Rowling", "Fantasy", "978-0439136365", "24.99", 42, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Goblet of Fire", "J. K. Rowling", "Fantasy", "978-0439139601", "25.99", 38, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Order of the Phoenix", "J. K. Rowling", "Fantasy", "978-0439358071", "26.99", 35, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Half-Blood Prince", "J. K. Rowling", "Fantasy", "978-0439785969", "27.99", 32, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("Harry Potter and the Deathly Hallows", "J. K. Rowling", "Fantasy", "978-0545139700", "28.99", 40, 10,
     "A fantasy novel written by British author J. K. Rowling."),
    ("The Chronicles of Narnia", "C. S. Lewis", "Fantasy", "978-0066238500", "29.99", 24, 5,
     "A series of seven fantasy novels by C. S. Lewis."),
    ("The Hunger Games", "Suzanne Collins", "Dystopian Fiction", "978-0439023528", "30.99", 33, 10,
     "A dystopian novel by the American writer Suzanne Collins."),
    ("Catching Fire", "Suzanne Collins", "Dystopian Fiction", "978-0439023498", "31.99", 30, 10,
     "A dystopian novel by the American writer Suzanne Collins."),
    ("Mockingjay", "Suzanne Collins", "Dystopian Fiction", "978-0439023511", "32.99", 28, 10,
     "A dystopian novel by the American writer Suzanne Collins."),
    ("The Maze Runner", "James Dashner", "Young Adult", "978-0385737951", "33.99", 19, 5,
     "A young adult dystopian science fiction novel by James Dashner."),
    ("The Scorch Trials", "James Dashner", "Young Adult", "978-0385738767", "34.99", 16, 5,
     "A young adult dystopian science fiction novel by James Dashner."),
    ("The Death Cure", "James Dashner", "Young Adult", "978-0385738774", "35.99", 14, 5,
     "A young adult dystopian science fiction novel by James Dashner."),
    ("Divergent", "Veronica Roth", "Young Adult", "978-0062024039", "36.99", 21, 5,
     "A dystopian novel by the American author Veronica Roth."),
    ("Insurgent", "Veronica Roth", "Young Adult", "978-0062024053", "37.99", 18, 5,
     "A dystopian novel by the American author Veronica Roth."),
    ("Allegiant", "Veronica Roth", "Young Adult", "978-0062024077", "38.99", 15, 5,
     "A dystopian novel by the American author Veronica Roth."),
    ("The Fault in Our Stars", "John Green", "Young Adult", "978-0142424179", "39.99", 0, 5,
     "A novel by John Green."),
    ("Looking for Alaska", "John Green", "Young Adult", "978-0142402511", "40.99", 2, 5,
     "A novel by John Green."),
]

# Demo accounts: (username, password, role, email, first, last, phone)
DEMO_USERS = [
    ("admin", "admin123", Role.ADMIN, "admin@bookshop.example", "Admin", "User", "+1-555-0100"),
    ("User", "qazwsxedcrfv12345", Role.USER, "user@example.com", "John", "Doe", "+1-555-0101"),
    ("User2", "password2", Role.USER, "user2@example.com", "Jane", "Smith", "+1-555-0102"),
]


def seed_store(store: Store) -> Store:
    """Populate ``store`` with the demo catalog and accounts."""
    now = _utc_now()

    for i, (name, author, genre, isbn, price, stock, threshold, desc) in enumerate(BOOKS, start=1):
        store.products.insert(Product(
            id=i,
            name=name,
            author=author,
            genre=genre,
            isbn=isbn,
            price=Decimal(price),
            description=desc,
            stock_quantity=stock,
            low_stock_threshold=threshold,
        ))

    for i, (username, password, role, email, first, last, phone) in enumerate(DEMO_USERS, start=1):
        store.users.insert(User(
            id=i,
            username=username,
            password_hash=hash_password(password),
            role=role,
            email=email,
            first_name=first,
            last_name=last,
            phone_number=phone,
        ))

    store.addresses.insert(Address(1, 1, AddressType.BOTH, "123 Admin Street", "New York", "NY", "10001", "USA", True))
    store.addresses.insert(Address(2, 2, AddressType.SHIPPING, "456 Oak Avenue", "Los Angeles", "CA", "90001", "USA", True))
    store.addresses.insert(Address(3, 2, AddressType.BILLING, "789 Pine Road", "Los Angeles", "CA", "90002", "USA", False))
    store.addresses.insert(Address(4, 3, AddressType.BOTH, "321 Maple Lane", "Chicago", "IL", "60601", "USA", True))

    coupons = [
        Coupon(1, "SAVE10", DiscountType.PERCENTAGE, Decimal("10"), created_at=now - timedelta(days=30)),
        Coupon(2, "WELCOME5", DiscountType.FIXED_AMOUNT, Decimal("5.00"), created_at=now - timedelta(days=30)),
        Coupon(3, "WINTER20", DiscountType.PERCENTAGE, Decimal("20"), expiration_date=now + timedelta(days=30),
               max_uses_total=100, current_uses=15, created_at=now - timedelta(days=15)),
        Coupon(4, "EXPIRED", DiscountType.PERCENTAGE, Decimal("15"), expiration_date=now - timedelta(days=5),
               current_uses=25, created_at=now - timedelta(days=60)),
        Coupon(5, "LIMITED50", DiscountType.FIXED_AMOUNT, Decimal("10.00"), max_uses_total=50,
               current_uses=50, created_at=now - timedelta(days=20)),
        Coupon(6, "INACTIVE", DiscountType.PERCENTAGE, Decimal("25"), is_active=False,
               created_at=now - timedelta(days=10)),
    ]
    for coupon in coupons:
        store.coupons.insert(coupon)

    # One method per simulator outcome; see payments.CARD_OUTCOMES
    methods = [
        (1, 1, PaymentMethodType.CREDIT_CARD, "Admin User", "0000", "12", "2027", True),
        (2, 1, PaymentMethodType.DEBIT_CARD, "Admin User", "1111", "06", "2026", False),
        (3, 2, PaymentMethodType.CREDIT_CARD, "John Doe", "0000", "03", "2028", True),
        (4, 2, PaymentMethodType.CREDIT_CARD, "John Doe", "1111", "09", "2027", False),
        (6, 3, PaymentMethodType.CREDIT_CARD, "Jane Smith", "2222", "11", "2026", True),
        (7, 3, PaymentMethodType.CREDIT_CARD, "Jane Smith", "3333", "05", "2028", False),
        (8, 2, PaymentMethodType.DEBIT_CARD, "John Doe", "4444", "02", "2025", False),
        (9, 2, PaymentMethodType.CREDIT_CARD, "John Doe", "6666", "08", "2029", False),
        (10, 3, PaymentMethodType.DEBIT_CARD, "Jane Smith", "5555", "04", "2027", False),
    ]
    for method_id, user_id, method_type, holder, last4, month, year, default in methods:
        store.payment_methods.insert(PaymentMethod(
            id=method_id,
            user_id=user_id,
            type=method_type,
            card_holder_name=holder,
            card_number_masked=f"**** **** **** {last4}",
            card_number_last4=last4,
            expiry_month=month,
            expiry_year=year,
            is_default=default,
        ))
    store.payment_methods.insert(PaymentMethod(
        id=5, user_id=2, type=PaymentMethodType.PAYPAL, paypal_email="john.doe@example.com",
    ))
    store.payment_methods.insert(PaymentMethod(
        id=11, user_id=3, type=PaymentMethodType.PAYPAL, paypal_email="jane.fail@example.com",
    ))

    return store
